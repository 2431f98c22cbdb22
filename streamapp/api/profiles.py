from flask import current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from streamapp import db, limiter
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_user
from streamapp.core.models import User
from streamapp.services.ens_service import is_ens_name, normalize_to_address
from streamapp.utils.helpers import clean_optional_text, is_valid_email, is_wallet_address, normalize_address

PROFILE_TEXT_FIELDS = ('username', 'display_name', 'bio', 'email', 'avatar_url')


def _resolve_address(value):
    """Maps a wallet address or ENS name to a lower-cased address, or None."""
    value = (value or '').strip()
    if is_ens_name(value):
        return normalize_address(normalize_to_address(value))
    if is_wallet_address(value):
        return normalize_address(value)
    return None


@api_bp.route('/profiles', methods=['GET'])
def get_profile():
    """
    Look up a profile by wallet address or ENS name.
    ---
    tags:
      - Profiles
    parameters:
      - name: address
        in: query
        type: string
        required: true
        description: A 0x wallet address or an ENS name such as vitalik.eth.
    responses:
      200:
        description: The profile.
      400:
        description: Missing address, malformed address or unresolvable ENS name.
      404:
        description: No profile for this address.
    """
    raw_address = request.args.get('address') or request.args.get('wallet_address')
    if not raw_address:
        return jsonify(error="ValidationError", message="address is required."), 400

    address = _resolve_address(raw_address)
    if not address:
        if is_ens_name(raw_address.strip()):
            return jsonify(error="ValidationError", message=f"Could not resolve ENS name '{raw_address}'."), 400
        return jsonify(error="ValidationError", message="Invalid wallet address."), 400

    user = User.query.filter_by(wallet_address=address).first()
    if user is None:
        return jsonify(error="NotFound", message="Profile not found"), 404
    return jsonify(serialize_user(user)), 200


@api_bp.route('/profiles', methods=['POST'])
@limiter.limit("60 per hour")
def upsert_profile():
    data = request.get_json(silent=True)
    if not data:
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    address = normalize_address(data.get('wallet_address'))
    if not is_wallet_address(address):
        return jsonify(error="ValidationError", message="A valid wallet_address is required."), 400

    values = {field: clean_optional_text(data.get(field)) for field in PROFILE_TEXT_FIELDS if field in data}
    if values.get('email') and not is_valid_email(values['email']):
        return jsonify(error="ValidationError", message="Invalid email address."), 400

    username = values.get('username')
    if username:
        taken = User.query.filter(User.username == username, User.wallet_address != address).first()
        if taken:
            return jsonify(error="ValidationError", message="Username is already taken."), 400

    user = User.query.filter_by(wallet_address=address).first()
    created = user is None
    if created:
        user = User(wallet_address=address)
        db.session.add(user)
    for field, value in values.items():
        setattr(user, field, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="ValidationError", message="Username is already taken."), 400

    current_app.logger.info(f"Profile {'created' if created else 'updated'} for {address}")
    return jsonify(serialize_user(user)), 201 if created else 200

from flask import jsonify, request

from streamapp import db, limiter
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_review
from streamapp.core.models import Review
from streamapp.utils.helpers import clean_optional_text, normalize_address


@api_bp.route('/reviews', methods=['GET'])
def list_reviews():
    reviewee = normalize_address(request.args.get('reviewee_address'))
    if not reviewee:
        return jsonify(error="ValidationError", message="reviewee_address is required."), 400
    reviews = Review.query.filter_by(reviewee_address=reviewee).order_by(Review.created_at.desc()).all()
    return jsonify([serialize_review(r) for r in reviews]), 200


@api_bp.route('/reviews', methods=['POST'])
@limiter.limit("20 per hour")
def create_review():
    data = request.get_json(silent=True)
    if not data:
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    reviewer = normalize_address(data.get('reviewer_address'))
    reviewee = normalize_address(data.get('reviewee_address'))
    if not reviewer or not reviewee:
        return jsonify(error="ValidationError", message="reviewer_address and reviewee_address are required."), 400

    rating = data.get('rating')
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        return jsonify(error="ValidationError", message="rating must be an integer between 1 and 5."), 400

    review = Review(
        reviewer_address=reviewer,
        reviewee_address=reviewee,
        rating=rating,
        comment=clean_optional_text(data.get('comment')),
    )
    db.session.add(review)
    db.session.commit()
    return jsonify(serialize_review(review)), 201

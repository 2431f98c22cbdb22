from flask import current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from streamapp import cache, db, limiter
from streamapp.api import api_bp
from streamapp.api.serializers import serialize_category
from streamapp.core.models import Category
from streamapp.utils.helpers import clean_optional_text, slugify

CATEGORIES_CACHE_KEY = 'api_categories_all'
CATEGORY_UPDATABLE_FIELDS = ('name', 'slug', 'description', 'image_url', 'order')


def _parse_order(value):
    if value is None or value == '':
        return 0
    if isinstance(value, bool):
        raise ValueError("order must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError("order must be an integer.")


@api_bp.route('/categories', methods=['GET'])
@cache.cached(timeout=300, key_prefix=CATEGORIES_CACHE_KEY)
def list_categories():
    """
    List categories.
    ---
    tags:
      - Categories
    responses:
      200:
        description: All categories ordered by their display order, then name.
    """
    categories = Category.query.order_by(Category.order.asc(), Category.name.asc()).all()
    return [serialize_category(c) for c in categories]


@api_bp.route('/categories', methods=['POST'])
@limiter.limit("30 per hour")
def create_category():
    data = request.get_json(silent=True)
    if not data:
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    name = clean_optional_text(data.get('name'))
    if not name:
        return jsonify(error="ValidationError", message="Category name is required."), 400
    if Category.query.filter_by(name=name).first():
        return jsonify(error="ValidationError", message=f"Category '{name}' already exists."), 400

    try:
        order = _parse_order(data.get('order'))
    except ValueError as e:
        return jsonify(error="ValidationError", message=str(e)), 400

    slug = clean_optional_text(data.get('slug')) or slugify(name, Category)
    category = Category(
        name=name,
        slug=slug,
        description=clean_optional_text(data.get('description')),
        image_url=clean_optional_text(data.get('image_url')),
        order=order,
    )
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="ValidationError", message=f"Slug '{slug}' is already in use."), 400

    cache.delete(CATEGORIES_CACHE_KEY)
    current_app.logger.info(f"Category '{category.name}' created with slug '{category.slug}'")
    return jsonify(serialize_category(category)), 201


@api_bp.route('/categories', methods=['PATCH'])
def update_categories():
    """
    Update one category or several at once.

    The body is either a single object or a list of objects; each must carry
    the ``id`` of the category it updates. The whole batch is rolled back if
    any entry is invalid.
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify(error="InvalidRequest", message="No input data provided or not valid JSON."), 400

    updates = data if isinstance(data, list) else [data]
    updated = []
    for entry in updates:
        if not isinstance(entry, dict) or not entry.get('id'):
            db.session.rollback()
            return jsonify(error="ValidationError", message="Each category update requires an id."), 400
        category = Category.query.get(entry['id'])
        if category is None:
            db.session.rollback()
            return jsonify(error="NotFound", message=f"Category {entry['id']} not found."), 404
        if 'order' in entry:
            try:
                entry = dict(entry, order=_parse_order(entry['order']))
            except ValueError as e:
                db.session.rollback()
                return jsonify(error="ValidationError", message=str(e)), 400
        for field in CATEGORY_UPDATABLE_FIELDS:
            if field in entry:
                setattr(category, field, entry[field])
        updated.append(category)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="ValidationError", message="Category name or slug is already in use."), 400

    cache.delete(CATEGORIES_CACHE_KEY)
    result = [serialize_category(c) for c in updated]
    return jsonify(result if isinstance(data, list) else result[0]), 200

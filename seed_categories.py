from streamapp import create_app, db
from streamapp.core.models import Category

COLLECTIBLE_CATEGORIES = [
    {"name": "Trading Card Games", "slug": "trading-card-games",
     "description": "Pokémon, Yu-Gi-Oh!, Magic: The Gathering, and more"},
    {"name": "Digital Collectibles", "slug": "digital-collectibles",
     "description": "Digital collectibles, NFTs, and virtual items"},
    {"name": "Sports Cards", "slug": "sports-cards",
     "description": "Baseball, basketball, football, and other sports cards"},
    {"name": "Comics", "slug": "comics", "description": "Vintage and modern comic books"},
    {"name": "Toys & Hobbies", "slug": "toys-hobbies", "description": "Action figures, Funko Pops, and collectible toys"},
    {"name": "Video Games", "slug": "video-games", "description": "Retro and modern gaming collectibles"},
    {"name": "NFTs", "slug": "nfts", "description": "Digital collectibles and art"},
    {"name": "Coins & Money", "slug": "coins-money", "description": "Rare coins and currency"},
    {"name": "Jewelry", "slug": "jewelry", "description": "Vintage and designer jewelry"},
    {"name": "Watches", "slug": "watches", "description": "Luxury and vintage timepieces"},
    {"name": "Art", "slug": "art", "description": "Paintings, prints, and sculptures"},
]


def seed_categories():
    """Inserts the collectible categories, skipping any whose name or slug exists. Returns the number added."""
    added = 0
    for order, item in enumerate(COLLECTIBLE_CATEGORIES):
        exists = Category.query.filter(
            (Category.name == item["name"]) | (Category.slug == item["slug"])
        ).first()
        if exists:
            print(f"Category '{item['name']}' already exists. Skipping.")
            continue
        db.session.add(Category(order=order, **item))
        added += 1
    db.session.commit()
    return added


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        count = seed_categories()
        print(f"Categories seeded successfully ({count} added).")

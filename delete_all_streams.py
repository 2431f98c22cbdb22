import sys

from streamapp import create_app, db
from streamapp.core.models import ChatMessage, Spotlight, Stream, StreamLike, StreamView


def delete_all_streams():
    """Deletes every stream and the rows that reference it. Returns the number of streams removed."""
    for model in (ChatMessage, StreamLike, StreamView, Spotlight):
        deleted = model.query.delete()
        print(f"Deleted {deleted} rows from {model.__tablename__}.")
    count = Stream.query.delete()
    db.session.commit()
    print(f"Deleted {count} streams.")
    return count


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        try:
            delete_all_streams()
        except Exception as e:
            db.session.rollback()
            print(f"Error deleting streams: {e}")
            sys.exit(1)
    print("Done!")

from streamapp import create_app
from streamapp.core.models import Stream


def check_streams(limit=10):
    streams = Stream.query.order_by(Stream.created_at.desc()).limit(limit).all()
    print(f"Found {len(streams)} streams:")
    for index, stream in enumerate(streams, start=1):
        state = 'live' if stream.is_live else ('ended' if stream.has_ended else 'idle')
        print(f"{index}. {stream.title} (ID: {stream.id}, {state}, likes: {stream.like_count or 0})")
    if not streams:
        print("No streams found in database.")
    return streams


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        check_streams()

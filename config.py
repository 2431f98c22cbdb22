import os

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'streamapp.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB limit
    UPLOAD_ALLOWED_MIMES = [
        'image/png', 'image/jpeg', 'image/gif', 'image/webp',
        'video/mp4', 'video/webm',
    ]

    # Livepeer Studio
    LIVEPEER_API_KEY = os.environ.get('LIVEPEER_API_KEY')
    LIVEPEER_API_URL = os.environ.get('LIVEPEER_API_URL', 'https://livepeer.studio/api')
    LIVEPEER_PLAYBACK_URL = os.environ.get('LIVEPEER_PLAYBACK_URL', 'https://playback.livepeer.com/hls')
    LIVEPEER_REQUEST_TIMEOUT = float(os.environ.get('LIVEPEER_REQUEST_TIMEOUT', 15))

    # Seconds to wait after ending a stream before looking for its recording asset
    STREAM_END_GRACE_SECONDS = float(os.environ.get('STREAM_END_GRACE_SECONDS', 5))
    THUMBNAIL_MAX_RETRIES = int(os.environ.get('THUMBNAIL_MAX_RETRIES', 3))
    THUMBNAIL_RETRY_DELAY = float(os.environ.get('THUMBNAIL_RETRY_DELAY', 2))
    VOD_WAIT_SECONDS = float(os.environ.get('VOD_WAIT_SECONDS', 30))
    VOD_POLL_INTERVAL = float(os.environ.get('VOD_POLL_INTERVAL', 2))

    # Pinata (IPFS pinning)
    PINATA_API_KEY = os.environ.get('PINATA_API_KEY')
    PINATA_SECRET_API_KEY = os.environ.get('PINATA_SECRET_API_KEY')
    PINATA_API_URL = os.environ.get('PINATA_API_URL', 'https://api.pinata.cloud')

    # Supabase storage
    SUPABASE_URL = os.environ.get('SUPABASE_URL')
    SUPABASE_KEY = os.environ.get('SUPABASE_SERVICE_ROLE_KEY') or os.environ.get('SUPABASE_KEY')
    SUPABASE_DEFAULT_BUCKET = os.environ.get('SUPABASE_DEFAULT_BUCKET', 'avatars')

    # ENS resolution
    WEB3_PROVIDER_URI = os.environ.get('WEB3_PROVIDER_URI', 'https://cloudflare-eth.com')

    CACHE_TYPE = os.environ.get('CACHE_TYPE', 'SimpleCache')
    RATELIMIT_ENABLED = os.environ.get('RATELIMIT_ENABLED', 'true').lower() in ['true', 'on', '1']

    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() in ['true', 'on', '1']
    LIVE_SYNC_INTERVAL_SECONDS = int(os.environ.get('LIVE_SYNC_INTERVAL_SECONDS', 60))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:' # Use in-memory SQLite for tests
    SERVER_NAME = 'localhost.test'
    APPLICATION_ROOT = '/'
    PREFERRED_URL_SCHEME = 'http'
    LIVEPEER_API_KEY = 'test-livepeer-key'
    PINATA_API_KEY = 'test-pinata-key'
    PINATA_SECRET_API_KEY = 'test-pinata-secret'
    SUPABASE_URL = 'https://test.supabase.co'
    SUPABASE_KEY = 'test-supabase-key'
    STREAM_END_GRACE_SECONDS = 0
    THUMBNAIL_RETRY_DELAY = 0
    VOD_WAIT_SECONDS = 0
    VOD_POLL_INTERVAL = 0
    CACHE_TYPE = 'NullCache'
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False

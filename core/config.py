import os
import logging
from dotenv import load_dotenv
from botocore.client import Config as BotoConfig
import boto3

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass

# Environment
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_BUCKET = os.getenv("R2_BUCKET", "")
R2_PUBLIC_BASE_URL = (os.getenv("R2_PUBLIC_BASE_URL", "") or "").strip().strip('"').strip("'").strip('`')  # Public bucket domain; presigned URLs are used when empty

DATABASE_URL = os.getenv("DATABASE_URL", "")

# Bearer tokens are issued by the accounts service; we only verify them
JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", "").strip()
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256").strip() or "HS256"

# Upload limits
MAX_VIDEO_SIZE_MB = int(os.getenv("MAX_VIDEO_SIZE_MB", "100"))
MAX_VIDEO_SIZE_BYTES = MAX_VIDEO_SIZE_MB * 1024 * 1024
MAX_THUMBNAIL_SIZE_MB = int(os.getenv("MAX_THUMBNAIL_SIZE_MB", "5"))
MAX_THUMBNAIL_SIZE_BYTES = MAX_THUMBNAIL_SIZE_MB * 1024 * 1024
ALLOWED_VIDEO_TYPES = [t.strip().lower() for t in os.getenv("ALLOWED_VIDEO_TYPES", "video/mp4,video/mpeg").split(",") if t.strip()]
ALLOWED_IMAGE_TYPES = [t.strip().lower() for t in os.getenv("ALLOWED_IMAGE_TYPES", "image/jpeg,image/png").split(",") if t.strip()]

# Metadata bounds
TITLE_MIN_LEN = 3
TITLE_MAX_LEN = 100
DESCRIPTION_MIN_LEN = 10
DESCRIPTION_MAX_LEN = 1000

# Catalog paging
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

FFPROBE_TIMEOUT_SEC = float(os.getenv("FFPROBE_TIMEOUT_SEC", "8") or "8")
PRESIGN_TTL_SEC = int(os.getenv("PRESIGN_TTL_SEC", str(7 * 24 * 3600)))

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("videotube")

# Static dir helper
STATIC_DIR = os.getenv("STATIC_DIR") or os.path.join(os.path.dirname(__file__), "..", "static")
STATIC_DIR = os.path.abspath(STATIC_DIR)

# S3/R2 resource for storage operations
s3 = None

if R2_ACCOUNT_ID and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY:
    s3 = boto3.resource(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=BotoConfig(signature_version="s3v4"),
        region_name="auto",
    )

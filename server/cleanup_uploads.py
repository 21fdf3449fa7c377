"""
Upload cleanup script
Deletes stored images older than the retention window (for cron or manual use)
"""
import argparse
import sys

import config
from services.image_service import sweep_expired_uploads

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Delete old uploaded images")
    parser.add_argument("--hours", type=float, default=config.UPLOAD_RETENTION_HOURS,
                        help="Delete files older than this many hours")
    args = parser.parse_args()

    try:
        deleted = sweep_expired_uploads(args.hours)
        print(f"[Cleanup] Done: {deleted} file(s) removed from {config.UPLOADS_DIR}")
    except OSError as e:
        print(f"[Cleanup] Error: {e}")
        sys.exit(1)

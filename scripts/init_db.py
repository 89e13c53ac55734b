#!/usr/bin/env python3
"""
Initialize EvenTotem database tables and media bucket.

This script creates the events tables, makes sure the S3 bucket exists and
optionally registers an administrator account:

    python scripts/init_db.py --admin-email admin@example.org --admin-name Admin
"""

import argparse
import sys
import os
import logging

# Add the project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from botocore.exceptions import ClientError, BotoCoreError
from sqlalchemy import inspect, text

from core.config import get_settings
from core.database import SessionLocal, engine, init_db
from core.storage import StorageConnectionError, get_s3_client
from models.user import User

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = ("events", "event_tags", "event_media", "event_permissions", "users")


def init_database():
    """Create tables and check they exist."""
    print("🗄️  Initializing events database...")

    try:
        init_db()

        with engine.connect() as conn:
            result = conn.execute(text("SELECT 1")).fetchone()
            print(f"✅ Database connected: {result[0]}")

        existing = set(inspect(engine).get_table_names())
        for table in EXPECTED_TABLES:
            if table in existing:
                print(f"✅ {table} table created/exists")
            else:
                print(f"❌ {table} table was not created")
                return False

        return True

    except Exception as e:
        print(f"❌ Database initialization failed: {str(e)}")
        return False


def init_bucket():
    """Create the media bucket if it does not exist."""
    print("\n🪣 Checking media bucket...")
    settings = get_settings()

    try:
        client = get_s3_client()
        try:
            client.head_bucket(Bucket=settings.S3_BUCKET)
            print(f"✅ Bucket {settings.S3_BUCKET} exists")
        except ClientError:
            client.create_bucket(Bucket=settings.S3_BUCKET)
            print(f"✅ Bucket {settings.S3_BUCKET} created")
        return True

    except (ClientError, BotoCoreError, StorageConnectionError) as e:
        print(f"❌ Bucket initialization failed: {str(e)}")
        return False


def register_admin(email, name):
    """Create or promote an administrator account."""
    print("\n👤 Registering administrator...")

    if not email:
        print("⏭️  No --admin-email given, skipping")
        return True

    db = SessionLocal()
    try:
        email = email.strip().lower()
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.is_admin = True
            user.is_active = True
            print(f"✅ Existing user {email} promoted to administrator")
        else:
            user = User(email=email, name=name or email, is_admin=True)
            db.add(user)
            print(f"✅ Administrator {email} created")
        db.commit()
        print(f"   Actor id: {user.id}")
        return True

    except Exception as e:
        db.rollback()
        print(f"❌ Administrator registration failed: {str(e)}")
        return False
    finally:
        db.close()


def main(argv=None):
    """Main initialization function."""
    parser = argparse.ArgumentParser(description="Initialize EvenTotem storage")
    parser.add_argument("--admin-email", help="Register (or promote) this administrator")
    parser.add_argument("--admin-name", help="Administrator display name")
    parser.add_argument("--skip-bucket", action="store_true", help="Do not touch the S3 bucket")
    args = parser.parse_args(argv)

    print("🚀 Starting EvenTotem Initialization\n")

    try:
        settings = get_settings()
        print(f"📋 Configuration:")
        print(f"   Database: {settings.database_url.split('@')[-1]}")
        print(f"   S3 endpoint: {settings.S3_ENDPOINT}")
        print(f"   Bucket: {settings.S3_BUCKET}")
        print(f"   Display timezone: {settings.DISPLAY_TIMEZONE}")

    except Exception as e:
        print(f"❌ Configuration error: {str(e)}")
        return False

    steps = [("Database", init_database)]
    if not args.skip_bucket:
        steps.append(("Media Bucket", init_bucket))
    steps.append(("Administrator", lambda: register_admin(args.admin_email, args.admin_name)))

    results = []

    for step_name, step_func in steps:
        print(f"\n{'='*50}")
        print(f"Step: {step_name}")
        print('='*50)

        result = step_func()
        results.append((step_name, result))

        if not result:
            print(f"❌ {step_name} failed. Stopping initialization.")
            break

    # Summary
    print(f"\n{'='*50}")
    print("INITIALIZATION SUMMARY")
    print('='*50)

    passed = 0
    for step_name, result in results:
        status = "✅ SUCCESS" if result else "❌ FAILED"
        print(f"{status} - {step_name}")
        if result:
            passed += 1

    print(f"\nCompleted: {passed}/{len(steps)} steps")

    if passed == len(steps):
        print("\n🎉 Initialization completed successfully!")
        print("\n📋 Next steps:")
        print("1. Start the FastAPI server: uvicorn app.main:app --reload")
        print("2. Check the totem feed: http://localhost:8000/api/v1/totem/events")
        return True
    else:
        print("\n❌ Initialization failed.")
        print("\n🔧 Troubleshooting:")
        print("1. Check database and S3 settings in .env")
        print("2. Ensure PostgreSQL and the S3 service are running")
        return False


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)

"""Test package - configures an isolated environment before the app is imported"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["RESEND_API_KEY"] = ""
os.environ["MAIL_HOST"] = ""
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

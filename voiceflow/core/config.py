import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./voiceflow.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"
AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "1") == "1"

# ✅ Security (tokens are issued by the managed auth provider)
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ Razorpay
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET")
RAZORPAY_CURRENCY = os.getenv("RAZORPAY_CURRENCY", "INR")

# Razorpay plan ids for recurring billing, keyed by (plan name, billing cycle)
RAZORPAY_PLAN_PRO_MONTHLY = os.getenv("RAZORPAY_PLAN_PRO_MONTHLY")
RAZORPAY_PLAN_PRO_YEARLY = os.getenv("RAZORPAY_PLAN_PRO_YEARLY")
RAZORPAY_PLAN_ENTERPRISE_MONTHLY = os.getenv("RAZORPAY_PLAN_ENTERPRISE_MONTHLY")
RAZORPAY_PLAN_ENTERPRISE_YEARLY = os.getenv("RAZORPAY_PLAN_ENTERPRISE_YEARLY")

# ✅ App
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

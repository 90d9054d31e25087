from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import the models so they are registered on Base.metadata
from authcore.models import user, biometric, mfa, tokens  # noqa: E402,F401

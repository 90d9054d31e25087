from authcore.core.config import settings


def isDebugMode() -> bool:
    return settings.MODE.lower() in ("dev", "debug")

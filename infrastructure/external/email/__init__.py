from .resend_client import ResendEmailClient

__all__ = ["ResendEmailClient"]

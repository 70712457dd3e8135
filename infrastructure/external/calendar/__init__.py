from .graph_client import GraphCalendarClient, MicrosoftIdentityClient

__all__ = ["GraphCalendarClient", "MicrosoftIdentityClient"]

"""Expose constructed client wrappers."""

from .datastore import DatastoreClient
from .discord import DiscordBotClient, DiscordOAuthClient, OAuthTokenExchangeError
from .provisioner import ProvisionerClient

__all__ = [
    "DatastoreClient",
    "DiscordBotClient",
    "DiscordOAuthClient",
    "OAuthTokenExchangeError",
    "ProvisionerClient",
]

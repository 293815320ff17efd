from .client import CONTENT_TYPE, PushgatewayClient, destination_url

__all__ = ["PushgatewayClient", "destination_url", "CONTENT_TYPE"]

from .base import BaseCollector, ResourceQuery, Record
from .azuread import AzureADCollector
from .exchange import ExchangeCollector
from .teams import TeamsCollector
from .sharepoint import SharePointCollector, OneDriveCollector

ALL_COLLECTORS = {
    cls.name: cls
    for cls in (
        AzureADCollector,
        ExchangeCollector,
        TeamsCollector,
        SharePointCollector,
        OneDriveCollector,
    )
}

__all__ = [
    "BaseCollector",
    "ResourceQuery",
    "Record",
    "AzureADCollector",
    "ExchangeCollector",
    "TeamsCollector",
    "SharePointCollector",
    "OneDriveCollector",
    "ALL_COLLECTORS",
]

"""
Collection — static constants and enum types.
"""
import enum


class MembershipOutcome(str, enum.Enum):
    """Result of adding an asset to, or removing it from, a collection."""
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"
    COLLECTION_NOT_FOUND = "collection_not_found"
    ASSET_NOT_FOUND = "asset_not_found"


# Fields a caller may change on an existing collection. asset_count is
# maintained by membership operations only.
UPDATABLE_FIELDS = frozenset({"name", "description", "cover_asset_id"})

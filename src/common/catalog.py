"""
Product Catalog for AI tools.

Static price and availability table, built once at startup and passed
into EntitlementService. A tool with sale_price == 0 is free: any signed-in
user may use it without a purchase.

Prices are whole rupees. The checkout widget charges in paise, see
ToolListing.sale_price_minor.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union

logger = logging.getLogger(__name__)

CURRENCY = "INR"
MINOR_UNITS_PER_MAJOR = 100

FREE_TOOL_ID = "ai-resume"
ATS_CHECKER_TOOL_ID = "ats-checker"
SKILL_GAP_TOOL_ID = "skill-gap"
COVER_LETTER_TOOL_ID = "cover-letter"


@dataclass(frozen=True)
class ToolListing:
    """A single catalog entry."""

    tool_id: str
    actual_price: int
    sale_price: int
    title: str = ""
    path: str = ""

    def __post_init__(self):
        if not self.tool_id:
            raise ValueError("tool_id must not be empty")
        for name in ("actual_price", "sale_price"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{self.tool_id}: {name} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{self.tool_id}: {name} must not be negative")
        if self.sale_price > self.actual_price:
            raise ValueError(
                f"{self.tool_id}: sale_price {self.sale_price} exceeds actual_price {self.actual_price}"
            )

    @property
    def is_free(self) -> bool:
        return self.sale_price == 0

    @property
    def sale_price_minor(self) -> int:
        """Sale price in the gateway's minor unit (paise)."""
        return self.sale_price * MINOR_UNITS_PER_MAJOR

    @property
    def display_title(self) -> str:
        return self.title or self.tool_id

    @classmethod
    def from_dict(cls, tool_id: str, data: Dict[str, Any]) -> "ToolListing":
        """
        Build a listing from a catalog file entry.

        Accepts both the long keys (actual_price/sale_price) and the short
        ones used by the web client's pricing table (actual/sale).
        """
        try:
            actual = data["actual_price"] if "actual_price" in data else data["actual"]
            sale = data["sale_price"] if "sale_price" in data else data["sale"]
        except KeyError as e:
            raise ValueError(f"{tool_id}: missing price key {e}") from e
        return cls(
            tool_id=tool_id,
            actual_price=actual,
            sale_price=sale,
            title=data.get("title", ""),
            path=data.get("path", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_id": self.tool_id,
            "title": self.display_title,
            "path": self.path,
            "actual_price": self.actual_price,
            "sale_price": self.sale_price,
        }


class ProductCatalog:
    """
    Immutable mapping of tool_id -> ToolListing.

    Iteration follows insertion order, which is the order tools are shown
    in the AI hub.
    """

    def __init__(self, listings: Mapping[str, ToolListing]):
        for tool_id, listing in listings.items():
            if tool_id != listing.tool_id:
                raise ValueError(f"Catalog key {tool_id!r} does not match listing {listing.tool_id!r}")
        self._listings = MappingProxyType(dict(listings))

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]]) -> "ProductCatalog":
        if not isinstance(data, dict):
            raise ValueError("Catalog must be a JSON object keyed by tool id")
        return cls({tool_id: ToolListing.from_dict(tool_id, entry) for tool_id, entry in data.items()})

    def get(self, tool_id: str) -> Optional[ToolListing]:
        return self._listings.get(tool_id)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._listings

    def __iter__(self) -> Iterator[ToolListing]:
        return iter(self._listings.values())

    def __len__(self) -> int:
        return len(self._listings)

    def is_free(self, tool_id: str) -> bool:
        """True only for catalog tools with a zero sale price."""
        listing = self._listings.get(tool_id)
        return listing is not None and listing.is_free

    def price_of(self, tool_id: str) -> int:
        """Sale price recorded on the ledger; 0 for unknown tools."""
        listing = self._listings.get(tool_id)
        return listing.sale_price if listing else 0

    @property
    def tool_ids(self) -> tuple:
        return tuple(self._listings.keys())


DEFAULT_CATALOG = ProductCatalog({
    FREE_TOOL_ID: ToolListing(
        FREE_TOOL_ID, actual_price=0, sale_price=0,
        title="AI Resume Builder", path="/ai-resume-templates",
    ),
    ATS_CHECKER_TOOL_ID: ToolListing(
        ATS_CHECKER_TOOL_ID, actual_price=699, sale_price=149,
        title="ATS Score Checker", path="/ats-score-checker",
    ),
    SKILL_GAP_TOOL_ID: ToolListing(
        SKILL_GAP_TOOL_ID, actual_price=999, sale_price=199,
        title="Skill Gap Analyzer", path="/skill-gap-analyzer",
    ),
    COVER_LETTER_TOOL_ID: ToolListing(
        COVER_LETTER_TOOL_ID, actual_price=499, sale_price=99,
        title="AI Cover Letter", path="/ai-cover-letter",
    ),
})


def load_catalog(path: Optional[Union[str, Path]] = None) -> ProductCatalog:
    """
    Load the product catalog.

    Args:
        path: JSON catalog file. Empty/None returns DEFAULT_CATALOG.

    Raises:
        ValueError: If the file is missing, not valid JSON, or has invalid entries
    """
    if not path:
        return DEFAULT_CATALOG

    catalog_path = Path(path)
    if not catalog_path.exists():
        raise ValueError(f"Catalog file not found: {catalog_path}")

    try:
        data = json.loads(catalog_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Catalog file {catalog_path} is not valid JSON: {e}") from e

    catalog = ProductCatalog.from_dict(data)
    logger.info(f"Loaded {len(catalog)} tools from {catalog_path}")
    return catalog

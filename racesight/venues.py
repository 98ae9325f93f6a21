"""Venue registry: name normalisation and live-provider lookup tables.

Live sources identify venues differently. Equibase keys US tracks by a short
track code; Racing Post keys UK/Irish courses by a hyphenated slug. Both are
matched on a case/whitespace-normalised venue name.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from racesight.errors import VenueNotFound

logger = logging.getLogger(__name__)

# Primary live provider (US): normalised venue name -> Equibase track code
EQUIBASE_TRACK_CODES = {
    "churchill downs": "CD",
    "santa anita": "SA",
    "santa anita park": "SA",
    "gulfstream park": "GP",
    "keeneland": "KEE",
    "saratoga": "SAR",
    "del mar": "DMR",
    "belmont park": "BEL",
    "belmont at the big a": "BAQ",
    "aqueduct": "AQU",
    "pimlico": "PIM",
    "monmouth park": "MTH",
    "arlington": "AP",
    "oaklawn park": "OP",
    "fair grounds": "FG",
    "tampa bay downs": "TAM",
    "laurel park": "LRL",
    "woodbine": "WO",
}

# Secondary live provider (UK/IRE): courses Racing Post publishes cards for
RACING_POST_COURSES = {
    # Great Britain
    "aintree", "ascot", "ayr", "bangor-on-dee", "bath", "beverley", "brighton",
    "carlisle", "cartmel", "catterick", "chelmsford-city", "cheltenham",
    "chepstow", "chester", "doncaster", "epsom", "exeter", "fakenham",
    "ffos-las", "fontwell", "goodwood", "hamilton", "haydock", "hereford",
    "hexham", "huntingdon", "kelso", "kempton", "leicester", "lingfield",
    "ludlow", "market-rasen", "musselburgh", "newbury", "newcastle",
    "newmarket", "newton-abbot", "nottingham", "perth", "plumpton",
    "pontefract", "redcar", "ripon", "salisbury", "sandown", "sedgefield",
    "southwell", "stratford", "taunton", "thirsk", "uttoxeter", "warwick",
    "wetherby", "wincanton", "windsor", "wolverhampton", "worcester",
    "yarmouth", "york",
    # Ireland
    "ballinrobe", "bellewstown", "clonmel", "cork", "curragh", "down-royal",
    "downpatrick", "dundalk", "fairyhouse", "galway", "gowran-park",
    "kilbeggan", "killarney", "laytown", "leopardstown", "limerick", "listowel",
    "naas", "navan", "punchestown", "roscommon", "sligo", "thurles", "tipperary",
    "tramore", "wexford",
}

# Display-name aliases seen across sources -> canonical normalised name
VENUE_ALIASES = {
    "chelmsford": "chelmsford city",
    "chelmsford city (aw)": "chelmsford city",
    "kempton (aw)": "kempton",
    "lingfield (aw)": "lingfield",
    "newcastle (aw)": "newcastle",
    "southwell (aw)": "southwell",
    "wolverhampton (aw)": "wolverhampton",
    "the curragh": "curragh",
    "bangor": "bangor-on-dee",
    "great yarmouth": "yarmouth",
    "sandown park": "sandown",
    "haydock park": "haydock",
    "kempton park": "kempton",
}


def normalize_venue(name: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace; apply known aliases."""
    if not name:
        return ""
    key = " ".join(name.strip().lower().split())
    return VENUE_ALIASES.get(key, key)


def venue_slug(name: Optional[str]) -> str:
    """Hyphenated slug form of a venue name (Racing Post URL style)."""
    return normalize_venue(name).replace(" ", "-")


def equibase_code(name: Optional[str]) -> Optional[str]:
    return EQUIBASE_TRACK_CODES.get(normalize_venue(name))


def racing_post_slug(name: Optional[str]) -> Optional[str]:
    slug = venue_slug(name)
    return slug if slug in RACING_POST_COURSES else None


@dataclass(frozen=True)
class LiveVenue:
    """A venue resolved against the live providers' lookup tables."""

    name: str
    equibase_code: Optional[str] = None
    racing_post_slug: Optional[str] = None


def resolve_live_venue(name: str) -> LiveVenue:
    """Resolve a venue for the live scraping path.

    Raises:
        VenueNotFound: if neither live provider recognises the venue
    """
    code = equibase_code(name)
    slug = racing_post_slug(name)
    if not code and not slug:
        logger.warning(f"Unknown venue for live sources: {name!r}")
        raise VenueNotFound(f"Venue not recognised: {name!r}")
    return LiveVenue(name=name.strip(), equibase_code=code, racing_post_slug=slug)


def match_venue(name: str, candidates) -> Optional[str]:
    """Find the source-provided venue name matching ``name`` after normalisation."""
    wanted = normalize_venue(name)
    if not wanted:
        return None
    for candidate in candidates:
        if normalize_venue(candidate) == wanted:
            return candidate
    return None

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stations import adjacent_stations

logger = logging.getLogger(__name__)

# --- Pydantic Models for Type Safety ---

class Stop(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[str] = None
    name: Optional[str] = None


class Line(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: Optional[str] = None
    product: Optional[str] = None


class Leg(BaseModel):
    """One scheduled movement between two stops, as returned by the provider."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True, alias_generator=to_camel)

    origin: Stop
    destination: Stop
    departure: Optional[str] = None
    planned_departure: Optional[str] = None
    arrival: Optional[str] = None
    planned_arrival: Optional[str] = None
    line: Optional[Line] = None
    walking: bool = False


class Price(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Optional[float] = None
    currency: Optional[str] = None
    hint: Optional[str] = None


class Trick(BaseModel):
    """How a price saving was achieved: the legs around the original connection."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    prepend: List[Leg] = Field(default_factory=list)
    append: List[Leg] = Field(default_factory=list)
    old_price: float


class Journey(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)

    legs: List[Leg]
    price: Optional[Price] = None
    trick: Optional[Trick] = None
    refresh_token: Optional[str] = None

    @property
    def price_amount(self) -> Optional[float]:
        return self.price.amount if self.price else None

    @property
    def saving(self) -> Optional[float]:
        if not self.trick or self.price_amount is None:
            return None
        return self.trick.old_price - self.price_amount


class Journeys(BaseModel):
    model_config = ConfigDict(extra="ignore")

    journeys: List[Journey] = Field(default_factory=list)


class SearchOptions(BaseModel):
    """Pass-through options of a journey search. Immutable; derive variants with model_copy."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True, alias_generator=to_camel)

    departure: Optional[datetime] = None
    arrival: Optional[datetime] = None
    results: Optional[int] = Field(default=None, ge=1)
    stopovers: bool = False
    transfers: Optional[int] = Field(default=None, ge=0)
    transfer_time: Optional[int] = Field(default=None, ge=0)  # minutes
    accessibility: Optional[Literal["none", "partial", "complete"]] = None
    bike: bool = False
    walking_speed: Optional[Literal["slow", "normal", "fast"]] = None
    start_with_walking: Optional[bool] = None
    products: Optional[Dict[str, bool]] = None
    tickets: bool = False
    polylines: Optional[bool] = None
    sub_stops: Optional[bool] = None
    entrances: Optional[bool] = None
    remarks: Optional[bool] = None
    scheduled_days: Optional[bool] = None
    language: Optional[str] = None
    via: Optional[str] = None

    def with_via(self, station: Optional[str]) -> "SearchOptions":
        return self.model_copy(update={"via": station})

    def to_query_params(self) -> Dict[str, str]:
        """Renders the options as camelCase query parameters, skipping unset values."""
        params = {}
        for name, value in self:
            if value is None or name == "products":
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif isinstance(value, datetime):
                value = value.isoformat()
            params[to_camel(name)] = str(value)
        for product, enabled in sorted((self.products or {}).items()):
            params[product] = "true" if enabled else "false"
        return params


@dataclass(frozen=True)
class SearchRequest:
    origin: str
    destination: str
    options: SearchOptions
    kind: str = "original"  # "original" | "extend_origin" | "extend_destination"


# --- Journey hashing ---

def hash_leg(leg: Leg) -> str:
    """Identifies a leg by its stops and (planned, else actual) times."""
    departure = leg.planned_departure if leg.planned_departure is not None else leg.departure
    arrival = leg.planned_arrival if leg.planned_arrival is not None else leg.arrival
    return f"{leg.origin.id}@{departure}>{leg.destination.id}@{arrival}"


def hash_legs(legs: List[Leg]) -> str:
    return ":".join(hash_leg(leg) for leg in legs)


# --- Request planning ---

def drop_via(options: Optional[SearchOptions]) -> SearchOptions:
    """The 'via' option is reserved for extension searches, so a caller value is discarded."""
    if options is None:
        return SearchOptions()
    if options.via:
        logger.warning("The 'via' option cannot be used. %s was passed.", options.via)
        return options.with_via(None)
    return options


def build_requests(
    origin: str,
    destination: str,
    options: Optional[SearchOptions] = None,
    graph: Optional[Dict[str, List[str]]] = None,
) -> List[SearchRequest]:
    """Queries the original connection and the longer ones that pass through it."""
    options = drop_via(options)
    requests = [SearchRequest(origin, destination, options, "original")]

    # Extend the start of the journey
    through_origin = options.with_via(origin)
    for new_origin in adjacent_stations(origin, graph):
        requests.append(SearchRequest(new_origin, destination, through_origin, "extend_origin"))

    # Extend the end of the journey
    through_destination = options.with_via(destination)
    for new_destination in adjacent_stations(destination, graph):
        requests.append(SearchRequest(origin, new_destination, through_destination, "extend_destination"))

    logger.debug(
        "REQ_PLAN %s->%s total=%d extend_origin=%d extend_destination=%d",
        origin,
        destination,
        len(requests),
        sum(1 for r in requests if r.kind == "extend_origin"),
        sum(1 for r in requests if r.kind == "extend_destination"),
    )
    return requests


# --- Price reconciliation ---

def update_cheapest(journey_map: Dict[str, Journey], journey: Journey, origin: str, destination: str) -> bool:
    """Replaces the matching original journey if this extended journey is strictly cheaper.

    The legs before `origin` and after `destination` are split off; the remaining
    legs are hashed and looked up in `journey_map`. On success the stored journey
    keeps only the original connection's legs and records the split-off legs and
    the first price ever seen for that connection in `trick`.
    """
    amount = journey.price_amount
    if amount is None:
        return False

    legs = journey.legs
    start = 0
    while start < len(legs) and legs[start].origin.id != origin:
        start += 1
    end = len(legs)
    while end > start and legs[end - 1].destination.id != destination:
        end -= 1

    # Journey didn't contain the original connection
    if start == end:
        logger.debug("TRIM_EMPTY %s->%s legs=%d", origin, destination, len(legs))
        return False

    key = hash_legs(legs[start:end])
    current = journey_map.get(key)

    # Unknown connection. Unseen connections are not added as new originals.
    if current is None or current.price_amount is None:
        return False

    if current.price_amount <= amount:
        return False

    old_price = current.trick.old_price if current.trick else current.price_amount
    journey_map[key] = journey.model_copy(update={
        "legs": list(legs[start:end]),
        "trick": Trick(prepend=list(legs[:start]), append=list(legs[end:]), old_price=old_price),
    })
    logger.debug("TRICK_FOUND %s old=%s new=%s", key, old_price, amount)
    return True


# --- Orchestration ---

class JourneyFinder:
    """Finds cheaper prices for a connection by searching extended connections through it.

    `provider` is any object with an async `journeys(origin, destination, options)`
    method returning `Journeys` (see providers.JourneyProvider).
    """

    def __init__(self, provider, station_graph: Optional[Dict[str, List[str]]] = None):
        self.provider = provider
        self.station_graph = station_graph

    async def find_journeys(
        self,
        origin: str,
        destination: str,
        options: Optional[SearchOptions] = None,
    ) -> List[Journey]:
        requests = build_requests(origin, destination, options, self.station_graph)
        if not requests:
            return []

        outcomes = await asyncio.gather(
            *(self.provider.journeys(r.origin, r.destination, r.options) for r in requests),
            return_exceptions=True,
        )

        stats = {
            "requests": len(requests),
            "failed": 0,
            "baseline": 0,
            "candidates": 0,
            "improved": 0,
        }

        original = outcomes[0]
        if isinstance(original, BaseException):
            # There is no journey available
            logger.info("No journey found for %s->%s: %r", origin, destination, original)
            return []

        # Hash the original journeys so that extended ones can be matched quickly
        cheapest: Dict[str, Journey] = {}
        for journey in original.journeys:
            if journey.price_amount is None:
                continue
            cheapest[hash_legs(journey.legs)] = journey
        stats["baseline"] = len(cheapest)

        # Check if the extended journeys are cheaper
        for request, outcome in zip(requests[1:], outcomes[1:]):
            if isinstance(outcome, BaseException):
                stats["failed"] += 1
                logger.debug(
                    "FETCH_FAIL %s %s->%s via=%s err=%r",
                    request.kind, request.origin, request.destination, request.options.via, outcome,
                )
                continue
            for journey in outcome.journeys:
                stats["candidates"] += 1
                if update_cheapest(cheapest, journey, origin, destination):
                    stats["improved"] += 1

        logger.debug(
            "RUN_DONE %s->%s requests=%d failed=%d baseline=%d candidates=%d improved=%d",
            origin, destination, stats["requests"], stats["failed"], stats["baseline"],
            stats["candidates"], stats["improved"],
        )
        return list(cheapest.values())


async def find_journeys(
    origin: str,
    destination: str,
    options: Optional[SearchOptions] = None,
    *,
    provider,
    station_graph: Optional[Dict[str, List[str]]] = None,
) -> List[Journey]:
    """Finds cheaper prices for the journeys between origin and destination."""
    finder = JourneyFinder(provider, station_graph=station_graph)
    return await finder.find_journeys(origin, destination, options)

"""
One automation pass per domain: fetch the list page, extract entities,
evaluate each one and dispatch the qualifying actions.

Every entity gets its own chain (task + cancellation token); all chains of a
pass run at once and finish in any order. Failures are collected in the
``CycleReport`` instead of being raised.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bot_config import DEFAULT_CONFIG, endpoint, merge_config
from dispatchers import (
    CANCELLED, NETWORK_ERROR, ActionDispatcher, ActionOutcome, CancellationToken,
)
from entities import TRAILER, EntityRecord
from errors import BotError, ErrorKind, MissingIdentifier
from evaluators import Action, Evaluator, select_trip
from extractors import (
    extract_employees, extract_freight_detail, extract_fuel_trucks, extract_garage,
    extract_trips, extract_vehicle_detail, extract_warehouse_freights,
)
from page_fetcher import PageFetcher
from session_views import HeadlessViewOrchestrator, SessionOrchestrator

logger = logging.getLogger(__name__)

DOMAINS = ("employee", "garage", "fuel", "trips", "freight", "warehouse")
INSPECT = "inspect"

ChainFactory = Callable[[CancellationToken], "asyncio.Future"]


@dataclass
class CycleReport:
    domain: str
    processed: int = 0
    acted: int = 0
    skipped: int = 0
    failures: Dict[str, ErrorKind] = field(default_factory=dict)
    error: Optional[str] = None
    outcomes: List[ActionOutcome] = field(default_factory=list)
    entities: List[EntityRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failures

    def summary(self) -> str:
        text = (f"[{self.domain}] processed={self.processed} acted={self.acted} "
                f"skipped={self.skipped} failures={len(self.failures)}")
        if self.error:
            text += f" error={self.error}"
        return text


class CycleRunner:
    def __init__(self, fetcher: PageFetcher, config: Optional[Dict[str, Any]] = None,
                 dispatcher: Optional[ActionDispatcher] = None,
                 evaluator: Optional[Evaluator] = None,
                 orchestrator: Optional[SessionOrchestrator] = None,
                 view_timeout: float = 30.0):
        self.config = merge_config(DEFAULT_CONFIG, config)
        self.endpoints = self.config["endpoints"]
        self.fetcher = fetcher
        self.dispatcher = dispatcher or ActionDispatcher(fetcher, self.endpoints)
        freight_cfg = self.config["freight"]
        self.evaluator = evaluator or Evaluator(
            fuel_threshold=self.config["fuel_threshold"],
            vocabulary=freight_cfg["vocabulary"],
        )
        self.orchestrator = orchestrator or HeadlessViewOrchestrator(fetcher, self.endpoints)
        self.view_timeout = view_timeout
        self._tokens: List[CancellationToken] = []
        self._tasks: List[asyncio.Task] = []

    # ── public API ────────────────────────────────────────────────────────────

    async def run_cycle(self, domain: str) -> CycleReport:
        runners = {
            "employee": self._employee_cycle,
            "garage": self._garage_cycle,
            "fuel": self._fuel_cycle,
            "trips": self._trips_cycle,
            "freight": self._freight_cycle,
            "warehouse": self._warehouse_cycle,
        }
        if domain not in runners:
            raise ValueError(f"Unknown domain {domain!r}, expected one of {', '.join(DOMAINS)}")

        report = CycleReport(domain)
        logger.info(f"Starting {domain} cycle")
        try:
            await runners[domain](report)
        except Exception as e:
            logger.error(f"{domain} cycle aborted: {e}", exc_info=True)
            report.error = str(e)
        logger.info(report.summary())
        return report

    def cancel(self):
        """Stop every in-flight chain; chains report as cancelled"""
        for token in self._tokens:
            token.cancel()
        for task in self._tasks:
            if not task.done():
                task.cancel()

    # ── chain plumbing ────────────────────────────────────────────────────────

    async def _load_page(self, name: str, report: CycleReport) -> Optional[str]:
        result = await self.fetcher.get(endpoint(self.endpoints, name))
        if not result.ok:
            report.error = str(result.error)
            return None
        return result.response.text

    async def _act(self, entity: EntityRecord, action: Optional[Action],
                   token: CancellationToken) -> Optional[ActionOutcome]:
        if action is None:
            return None
        return await self.dispatcher.dispatch(entity, action, token)

    async def _run_chains(self, report: CycleReport, chains: Sequence[Tuple[str, ChainFactory]]):
        started = []
        for entity_id, factory in chains:
            token = CancellationToken()
            task = asyncio.ensure_future(factory(token))
            self._tokens.append(token)
            self._tasks.append(task)
            started.append((entity_id, token, task))

        try:
            results = await asyncio.gather(*(task for _, _, task in started), return_exceptions=True)
        finally:
            for _, token, task in started:
                self._tokens.remove(token)
                self._tasks.remove(task)

        for (entity_id, _, _), result in zip(started, results):
            if isinstance(result, asyncio.CancelledError):
                report.failures[entity_id] = ErrorKind.CANCELLED
            elif isinstance(result, BaseException):
                logger.error(f"Chain for {entity_id} crashed: {result!r}", exc_info=result)
                kind = result.kind if isinstance(result, BotError) else None
                report.failures[entity_id] = kind or ErrorKind.PARSE_ERROR
            elif result is not None:
                report.outcomes.append(result)
                if result.succeeded:
                    report.acted += 1
                else:
                    report.failures[entity_id] = result.error_kind

    async def _fetch_detail(self, entity_id: str, template: str,
                            token: CancellationToken) -> Tuple[Optional[str], Optional[ActionOutcome]]:
        if token.cancelled:
            return None, ActionOutcome(entity_id, INSPECT, CANCELLED)
        result = await self.fetcher.get(endpoint(self.endpoints, template, entity_id))
        if not result.ok:
            return None, ActionOutcome(entity_id, INSPECT, NETWORK_ERROR, message=str(result.error))
        return result.response.text, None

    async def _evaluate_and_act(self, entity: EntityRecord, token: CancellationToken, **evaluate_kwargs):
        return await self._act(entity, self.evaluator.evaluate(entity, **evaluate_kwargs), token)

    def _simple_chains(self, entities: Sequence[EntityRecord], **evaluate_kwargs):
        return [(e.id, partial(self._evaluate_and_act, e, **evaluate_kwargs)) for e in entities]

    # ── domains ───────────────────────────────────────────────────────────────

    async def _employee_cycle(self, report: CycleReport):
        html = await self._load_page("employees_page", report)
        if html is None:
            return
        dropped: List[MissingIdentifier] = []
        employees = extract_employees(html, self.config["employee_tables"], dropped)
        report.skipped, report.processed = len(dropped), len(employees)
        report.entities = employees
        await self._run_chains(report, self._simple_chains(employees))

    async def _vehicle_chain(self, vehicle: EntityRecord, token: CancellationToken):
        template = "trailer_detail" if vehicle.kind == TRAILER else "truck_detail"
        html, failure = await self._fetch_detail(vehicle.id, template, token)
        if failure is not None:
            return failure
        vehicle = vehicle.with_fields(**extract_vehicle_detail(html, vehicle.kind))
        logger.info(f"{vehicle.kind.title()} {vehicle.id} condition: {vehicle.get('condition')}")
        return await self._act(vehicle, self.evaluator.evaluate(vehicle), token)

    async def _garage_cycle(self, report: CycleReport):
        html = await self._load_page("garage_page", report)
        if html is None:
            return
        dropped: List[MissingIdentifier] = []
        vehicles = extract_garage(html, dropped)
        report.skipped, report.processed = len(dropped), len(vehicles)
        report.entities = vehicles
        await self._run_chains(report, [(v.id, partial(self._vehicle_chain, v)) for v in vehicles])

    async def _fuel_cycle(self, report: CycleReport):
        html = await self._load_page("fuel_station_page", report)
        if html is None:
            return
        dropped: List[MissingIdentifier] = []
        trucks = extract_fuel_trucks(html, dropped)
        report.skipped, report.processed = len(dropped), len(trucks)
        report.entities = trucks
        for truck in trucks:
            logger.info(f"Truck {truck.id} ({truck.get('name', '')}) fuel: {truck['fuel_percentage']:.2f}%")
        await self._run_chains(report, self._simple_chains(trucks, refuel=True))

    async def _trips_cycle(self, report: CycleReport):
        html = await self._load_page("trips_page", report)
        if html is None:
            return
        dropped: List[MissingIdentifier] = []
        trips = extract_trips(html, dropped)
        report.skipped, report.processed = len(dropped), len(trips)
        report.entities = trips
        action = select_trip(trips)
        if action is None:
            logger.info("No available trip found")
            return
        trip = trips[0]
        logger.info(f"Selected trip {trip.id}: {trip.get('departure')} -> {trip.get('destination')} "
                    f"(${trip.get('earnings')})")
        await self._run_chains(report, [(trip.id, partial(self._act, trip, action))])
        if report.acted:
            await self._browse_freights([trip.id])

    async def _browse_freights(self, freight_ids: Sequence[str]):
        handle = await self.orchestrator.open_concurrent_views(freight_ids)
        await handle.wait(self.view_timeout)
        pages = await self.orchestrator.close_all(handle)
        for freight_id, page in pages.items():
            for freight in extract_freight_detail(page.text, self.evaluator.vocabulary):
                labels = [b.label for b in freight.get("buttons", ())]
                logger.info(f"Freight {freight.id} details: {dict(freight.get('details', {}))} buttons: {labels}")

    async def _freight_chain(self, freight_id: str, token: CancellationToken):
        html, failure = await self._fetch_detail(freight_id, "freight_detail", token)
        if failure is not None:
            return failure
        freight_cfg = self.config["freight"]
        freights = extract_freight_detail(html, self.evaluator.vocabulary, freight_cfg["status_selector"])
        if not freights:
            logger.warning(f"Freight {freight_id}: detail page has no freight number")
            return None
        freight = freights[0]
        return await self._act(freight, self.evaluator.evaluate(freight), token)

    async def _freight_cycle(self, report: CycleReport):
        freight_ids = []
        html = await self._load_page("warehouse_page", report)
        if html is not None:
            dropped: List[MissingIdentifier] = []
            freight_ids = [f.id for f in extract_warehouse_freights(html, dropped)]
            report.skipped = len(dropped)
        for extra in self.config["freight"].get("ids") or []:
            extra = str(extra)
            if extra.isdigit() and extra not in freight_ids:
                freight_ids.append(extra)
        report.processed = len(freight_ids)
        await self._run_chains(report, [(fid, partial(self._freight_chain, fid)) for fid in freight_ids])

    async def _warehouse_cycle(self, report: CycleReport):
        html = await self._load_page("warehouse_page", report)
        if html is None:
            return
        dropped: List[MissingIdentifier] = []
        freights = extract_warehouse_freights(html, dropped)
        report.skipped, report.processed = len(dropped), len(freights)
        report.entities = freights
        for freight in freights:
            logger.info(f"Warehouse freight {freight.id}: {freight.get('departure', '?')} -> "
                        f"{freight.get('destination', '?')} {freight.get('distance', '')}")

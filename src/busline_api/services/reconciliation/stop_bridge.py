"""Timing point code to GTFS stop id bridge, keyed by stop name."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, NamedTuple, Optional, Tuple

from busline_api.logging import get_logger
from busline_api.models.reference import DISPLAY_DIRECTIONS

if TYPE_CHECKING:
    from busline_api.models.reference import ReferenceSnapshot
    from busline_api.services.reference.store import ReferenceStore

logger = get_logger(__name__)


class TimingPoint(NamedTuple):
    name: str
    direction: int


# OVapi timing point code -> stop name as it appears in the static dataset.
# Direction 1 is Zandvoort -> Amsterdam (GTFS direction 0).
TPC_TO_NAME: Dict[str, TimingPoint] = {
    # Direction 1
    "55211310": TimingPoint("Zandvoort, Zandvoort Centrum", 1),
    "55210170": TimingPoint("Zandvoort, Kostverlorenstraat", 1),
    "55210050": TimingPoint("Zandvoort, Huis in de Duinen", 1),
    "55210070": TimingPoint("Zandvoort, Waterleiding/Nw. Unicum", 1),
    "55145010": TimingPoint("Bentveld, Westerduinweg", 1),
    "55145030": TimingPoint("Aerdenhout, Spechtlaan", 1),
    "55145070": TimingPoint("Aerdenhout, Viersprong", 1),
    "55142200": TimingPoint("Heemstede, Stat.Heemstede-Aerdenh.", 1),
    "55002020": TimingPoint("Heemstede, Leidsevaartweg", 1),
    "55002140": TimingPoint("Haarlem, Edisonstraat", 1),
    "55002180": TimingPoint("Haarlem, Schouwtjesbrug", 1),
    "55002200": TimingPoint("Haarlem, Emmaplein", 1),
    "55000150": TimingPoint("Haarlem, Centrum/Houtplein", 1),
    "55007510": TimingPoint("Haarlem, Rustenburgerlaan", 1),
    "55001070": TimingPoint("Haarlem, Schipholweg/Europaweg", 1),
    "55004160": TimingPoint("Haarlem, Burg. Reinaldapark", 1),
    "55007530": TimingPoint("Haarlem, Jac. van Looystraat", 1),
    "55007500": TimingPoint("Haarlem, Prins Bernhardlaan", 1),
    "55007550": TimingPoint("Haarlem, Station Spaarnwoude", 1),
    "55230110": TimingPoint("Halfweg, Station Halfweg-Zwanenbrg", 1),
    "55230050": TimingPoint("Halfweg, Oranje Nassaustraat", 1),
    "30003130": TimingPoint("Amsterdam, Plein '40-45", 1),
    "30003054": TimingPoint("Amsterdam, Burg. Fockstraat", 1),
    "30003163": TimingPoint("Amsterdam, Stat. De Vlugtlaan", 1),
    "30003060": TimingPoint("Amsterdam, Bos en Lommerplein", 1),
    "30003037": TimingPoint("Amsterdam, Egidiusstraat", 1),
    "30002177": TimingPoint("Amsterdam, Bos en Lommerweg", 1),
    "57131530": TimingPoint("Amsterdam, Ch. de Bourbonstraat", 1),
    "57131550": TimingPoint("Amsterdam, De Rijpgracht", 1),
    "30002129": TimingPoint("Amsterdam, G.v. Ledenberchstraat", 1),
    "30002127": TimingPoint("Amsterdam, Rozengracht", 1),
    "57003574": TimingPoint("Amsterdam, Busstation Elandsgracht", 1),
    # Direction 2
    "30002128": TimingPoint("Amsterdam, G.v. Ledenberchstraat", 2),
    "57131540": TimingPoint("Amsterdam, De Rijpgracht", 2),
    "57131520": TimingPoint("Amsterdam, Ch. de Bourbonstraat", 2),
    "30003038": TimingPoint("Amsterdam, Bos en Lommerweg", 2),
    "30003036": TimingPoint("Amsterdam, Egidiusstraat", 2),
    "30003061": TimingPoint("Amsterdam, Bos en Lommerplein", 2),
    "30003162": TimingPoint("Amsterdam, Stat. De Vlugtlaan", 2),
    "30003055": TimingPoint("Amsterdam, Burg. Fockstraat", 2),
    "30003087": TimingPoint("Amsterdam, Plein '40-45", 2),
    "55230040": TimingPoint("Halfweg, Oranje Nassaustraat", 2),
    "55230100": TimingPoint("Halfweg, Station Halfweg-Zwanenbrg", 2),
    "55000320": TimingPoint("Haarlem, Station Spaarnwoude", 2),
    "55007560": TimingPoint("Haarlem, Springerlaan [Tijdelijk]", 2),
    "55007540": TimingPoint("Haarlem, Burgemeester Reinaldapark", 2),
    "55001241": TimingPoint("Haarlem, Schipholweg/Europaweg", 2),
    "55007580": TimingPoint("Haarlem, Rustenburgerlaan", 2),
    "55000120": TimingPoint("Haarlem, Centrum/Houtplein", 2),
    "55002150": TimingPoint("Haarlem, Emmaplein", 2),
    "55002170": TimingPoint("Haarlem, Schouwtjesbrug", 2),
    "55002210": TimingPoint("Haarlem, Edisonstraat", 2),
    "55142010": TimingPoint("Heemstede, Leidsevaartweg", 2),
    "55145520": TimingPoint("Heemstede, Stat.Heemstede-Aerdenh.", 2),
    "55145040": TimingPoint("Aerdenhout, Viersprong", 2),
    "55145080": TimingPoint("Aerdenhout, Spechtlaan", 2),
    "55210020": TimingPoint("Bentveld, Westerduinweg", 2),
    "55210040": TimingPoint("Zandvoort, Waterleiding/Nw. Unicum", 2),
    "55210060": TimingPoint("Zandvoort, Huis in de Duinen", 2),
    "55210080": TimingPoint("Zandvoort, Kostverlorenstraat", 2),
    "55210100": TimingPoint("Zandvoort, Koninginneweg", 2),
}


def build_name_table(snapshot: Optional[ReferenceSnapshot]) -> Dict[Tuple[int, str], str]:
    """Map (display direction, stop name) to GTFS stop id for a snapshot."""
    table: Dict[Tuple[int, str], str] = {}
    if snapshot is None:
        return table
    for direction in DISPLAY_DIRECTIONS:
        for stop in snapshot.stops_for_direction(direction):
            table[(direction, stop.name)] = stop.stop_id
    return table


class StopBridge:
    """Resolves an OVapi timing point to the GTFS stop id of the active snapshot.

    The name table is built lazily from the snapshot and remembered together
    with the snapshot it came from; a different active snapshot, or an
    explicit ``invalidate()``, causes a rebuild on the next lookup.
    """

    def __init__(
        self,
        store: ReferenceStore,
        timing_points: Optional[Dict[str, TimingPoint]] = None,
    ) -> None:
        self._store = store
        self._timing_points = TPC_TO_NAME if timing_points is None else timing_points
        self._table: Optional[Dict[Tuple[int, str], str]] = None
        self._table_source: Optional[ReferenceSnapshot] = None

    def invalidate(self, _snapshot: object = None) -> None:
        self._table = None
        self._table_source = None

    def _current_table(self) -> Dict[Tuple[int, str], str]:
        snapshot = self._store.snapshot
        table = self._table
        if table is None or self._table_source is not snapshot:
            table = build_name_table(snapshot)
            self._table = table
            self._table_source = snapshot
            logger.debug("Stop bridge table rebuilt", entry_count=len(table))
        return table

    def lookup_stop_id(self, tpc: str, direction: int) -> Optional[str]:
        """GTFS stop id for a timing point in a display direction, or None."""
        entry = self._timing_points.get(tpc)
        if entry is None:
            return None
        return self._current_table().get((direction, entry.name))

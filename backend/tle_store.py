from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from skyfield.api import EarthSatellite, load

ts = load.timescale()


@dataclass(frozen=True)
class TleRecord:
    name: str
    line1: str
    line2: str

    @property
    def norad_id(self) -> int:
        return _parse_catnr_from_line1(self.line1)

    def to_satellite(self) -> EarthSatellite:
        return EarthSatellite(self.line1, self.line2, self.name, ts)

    def to_text(self) -> str:
        return f"{self.name}\n{self.line1}\n{self.line2}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "norad_id": self.norad_id,
            "line1": self.line1,
            "line2": self.line2,
        }


# Catálogo embebido: último tier del waterfall, nunca falla.
# Estación, constelaciones de comunicaciones, ciencia, navegación y clima.
EMBEDDED_CATALOG_TEXT = """ISS (ZARYA)
1 25544U 98067A   24355.50000000  .00020000  00000-0  36000-3 0  9999
2 25544  51.6400 200.0000 0007000  90.0000 270.0000 15.50000000400000
STARLINK-1007
1 44713U 19074A   24355.50000000  .00010000  00000-0  70000-4 0  9999
2 44713  53.0000 150.0000 0001500  80.0000 280.0000 15.06000000200000
HUBBLE SPACE TELESCOPE
1 20580U 90037B   24355.50000000  .00002000  00000-0  10000-4 0  9999
2 20580  28.4700 100.0000 0002800  50.0000 310.0000 15.09000000500000
TIANHE (CSS)
1 48274U 21035A   24355.50000000  .00015000  00000-0  25000-3 0  9999
2 48274  41.4700 180.0000 0005000 120.0000 240.0000 15.60000000100000
GPS BIIR-2
1 24876U 97035A   24355.50000000  .00000100  00000-0  10000-6 0  9999
2 24876  55.5000  60.0000 0050000 200.0000 160.0000  2.00570000300000
GPS BIIR-3
1 24877U 97036A   24355.50000000  .00000100  00000-0  10000-6 0  9999
2 24877  55.5000  70.0000 0050000 210.0000 150.0000  2.00570000300000
IRIDIUM 100
1 42737U 17036A   24355.50000000  .00000200  00000-0  15000-4 0  9999
2 42737  86.4000  75.0000 0001500  45.0000 315.0000 14.34000000200000
ONEWEB-0010
1 44057U 19010A   24355.50000000  .00000150  00000-0  12000-4 0  9999
2 44057  87.4100  40.0000 0002500 110.0000 250.0000 13.15000000300000
GALILEO 1 (GSAT0101)
1 37846U 11060A   24355.50000000  .00000050  00000-0  10000-6 0  9999
2 37846  56.0000 120.0000 0001200 200.0000 160.0000  1.70470000200000
GLONASS-K (COSMOS 2471)
1 37372U 11009A   24355.50000000  .00000070  00000-0  10000-6 0  9999
2 37372  64.8400  55.0000 0001500 150.0000 210.0000  2.13100000250000
NOAA 19
1 33591U 09005A   24355.50000000  .00000200  00000-0  15000-4 0  9999
2 33591  99.1900  80.0000 0014000 300.0000  60.0000 14.12000000400000"""


def _parse_catnr_from_line1(line1: str) -> int:
    # En TLE real: line1.split()[1] es "25544U"
    token = line1.split()[1]
    digits = "".join(ch for ch in token if ch.isdigit())
    if not digits:
        raise ValueError("no pude leer CATNR en line1")
    return int(digits)


def contains_tle_line1(text: str) -> bool:
    """
    Validación de espejos: alguna línea empieza con "1 " (LF o CRLF).
    """
    if not text:
        return False
    if text.lstrip("\ufeff").startswith("1 "):
        return True
    return "\n1 " in text or "\r\n1 " in text


def parse_catalog(text: str) -> List[TleRecord]:
    """
    Parser robusto:
    agrupa nombre/line1/line2 en el orden de la fuente, acepta sets de 2
    líneas sin nombre y saltea basura.
    """
    lines = [ln.strip().lstrip("\ufeff") for ln in text.splitlines()]
    lines = [ln for ln in lines if ln]

    records: List[TleRecord] = []
    i = 0
    while i < len(lines) - 1:
        line1, line2 = lines[i], lines[i + 1]
        if line1.startswith("1 ") and line2.startswith("2 "):
            try:
                catnr = _parse_catnr_from_line1(line1)
            except (ValueError, IndexError):
                i += 1
                continue

            prev = lines[i - 1] if i >= 1 else None
            if prev is not None and not prev.startswith(("1 ", "2 ")):
                # formato 3le de Space-Track: "0 ISS (ZARYA)"
                name = prev[2:].strip() if prev.startswith("0 ") else prev
            else:
                name = f"CATNR {catnr}"

            records.append(TleRecord(name=name, line1=line1, line2=line2))
            i += 2
            continue
        i += 1

    return records


def find_record(records: Iterable[TleRecord], norad_id: int) -> Optional[TleRecord]:
    for rec in records:
        try:
            if rec.norad_id == norad_id:
                return rec
        except (ValueError, IndexError):
            continue
    return None


def embedded_catalog() -> List[TleRecord]:
    return parse_catalog(EMBEDDED_CATALOG_TEXT)

"""CSV replay data source.

Replays exported bars one at a time, oldest first, so a recorded session can
be driven through the engine exactly as a live one would be. Files live at
``<root>/<SYMBOL>/<timeframe>/<YYYY-MM-DD>_data.csv``.
"""

import threading
from collections import deque
from datetime import date
from pathlib import Path
from typing import Deque, Dict, List, Optional, Tuple

import pandas as pd
from loguru import logger

from ..config import CsvSourceConfig
from ..utils.time_utils import parse_provider_time
from ..utils.timeframe import TimeFrame
from .base import Bar, DataSource, NoDataError, ProviderError, as_date_str

REQUIRED_COLUMNS = ["datetime", "open", "high", "low", "close"]

_Key = Tuple[str, TimeFrame, str]


class CsvReplaySource(DataSource):
    """FIFO replay of exported bar files."""

    def __init__(self, config: Optional[CsvSourceConfig] = None) -> None:
        """Initialize replay source.

        Args:
            config: Location of the exported files.
        """
        self.config = config or CsvSourceConfig()
        self._queues: Dict[_Key, Deque[Bar]] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        """Source name."""
        return "csv"

    def file_path(self, symbol: str, timeframe: TimeFrame, session_date: date | str) -> Path:
        """Path of the export for one symbol, timeframe and day."""
        day = as_date_str(session_date)
        return Path(self.config.root_dir) / symbol.upper() / timeframe.value / f"{day}_data.csv"

    def prepare_session(self, symbol: str, session_date: date | str) -> None:
        """Drop any replay position for the symbol/day so it restarts from the first bar."""
        day = as_date_str(session_date)
        with self._lock:
            for key in [k for k in self._queues if k[0] == symbol.upper() and k[2] == day]:
                del self._queues[key]

        logger.info(f"[{symbol}] Initialized CSV replay for {day}")

    def fetch_bar(
        self,
        symbol: str,
        timeframe: TimeFrame,
        session_date: date | str,
    ) -> Bar:
        """Pop the next recorded bar."""
        key = (symbol.upper(), timeframe, as_date_str(session_date))

        with self._lock:
            queue = self._queues.get(key)
            if queue is None:
                queue = deque(self.load_bars(symbol, timeframe, session_date))
                self._queues[key] = queue

            if not queue:
                raise NoDataError(
                    f"Replay exhausted for {symbol} {timeframe.value} on {key[2]}"
                )
            return queue.popleft()

    def remaining(self, symbol: str, timeframe: TimeFrame, session_date: date | str) -> int:
        """Bars left to replay (unloaded files count as unknown, -1)."""
        key = (symbol.upper(), timeframe, as_date_str(session_date))
        with self._lock:
            queue = self._queues.get(key)
            return -1 if queue is None else len(queue)

    def load_bars(self, symbol: str, timeframe: TimeFrame, session_date: date | str) -> List[Bar]:
        """Read and normalize one export file.

        Raises:
            NoDataError: If the file does not exist.
            ProviderError: If the file is malformed.
        """
        path = self.file_path(symbol, timeframe, session_date)
        if not path.exists():
            raise NoDataError(f"No export for {symbol} {timeframe.value}: {path}")

        try:
            df = pd.read_csv(path, skipinitialspace=True)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ProviderError(f"Failed to read {path}: {e}") from e

        df.columns = [str(c).strip().lower() for c in df.columns]
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ProviderError(f"{path} is missing columns {missing}")

        bars = []
        for record in df.to_dict("records"):
            try:
                bars.append(
                    Bar(
                        symbol=symbol.upper(),
                        timeframe=timeframe,
                        timestamp=parse_provider_time(str(record["datetime"])),
                        open=float(record["open"]),
                        high=float(record["high"]),
                        low=float(record["low"]),
                        close=float(record["close"]),
                        volume=_optional_float(record.get("volume")) or 0.0,
                        trade_count=_optional_int(record.get("trade_count")),
                        vwap=_optional_float(record.get("vwap")),
                        source=self.name,
                    )
                )
            except ValueError as e:
                raise ProviderError(f"Malformed row in {path}: {record}") from e

        bars.sort(key=lambda b: b.timestamp)
        logger.debug(f"Loaded {len(bars)} {timeframe.value} bars for {symbol} from {path}")

        return bars


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _optional_int(value) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)

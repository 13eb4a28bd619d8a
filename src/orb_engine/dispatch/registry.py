"""Static mapping of strategy variants to engine instances."""

from datetime import datetime
from typing import Callable, Dict, List, Optional

from loguru import logger

from ..config import EngineConfig, StrategyDataSource, StrategyType
from ..data.base import DataSource
from ..data.factory import build_data_source
from ..execution.gateway import OrderGateway
from ..strategy.orb import OrbStrategy


class StrategyNotFoundError(LookupError):
    """No engine is registered for a strategy type."""


class StrategyRegistry:
    """Registered strategy engines, one per :class:`StrategyType`."""

    def __init__(self) -> None:
        self._strategies: Dict[StrategyType, OrbStrategy] = {}

    def register(self, strategy: OrbStrategy) -> None:
        """Register an engine.

        Raises:
            ValueError: If the type is already registered or the bound data
                source cannot serve the configured timeframes.
        """
        if strategy.strategy_type in self._strategies:
            raise ValueError(f"Strategy {strategy.strategy_type.value} is already registered")

        for timeframe in (strategy.or_timeframe, strategy.monitor_timeframe):
            if not strategy.data_source.supports(timeframe):
                raise ValueError(
                    f"Data source '{strategy.data_source.name}' does not support "
                    f"{timeframe.value} bars required by {strategy.strategy_type.value}"
                )

        self._strategies[strategy.strategy_type] = strategy
        logger.debug(
            f"Registered {strategy.strategy_type.value} on {strategy.data_source.name} data"
        )

    def get_strategy(self, strategy_type: StrategyType) -> OrbStrategy:
        """Engine for a strategy type.

        Raises:
            StrategyNotFoundError: If the type is not registered.
        """
        try:
            return self._strategies[strategy_type]
        except KeyError:
            raise StrategyNotFoundError(
                f"No strategy registered for {getattr(strategy_type, 'value', strategy_type)}"
            ) from None

    def types(self) -> List[StrategyType]:
        """Registered strategy types."""
        return list(self._strategies)

    def __contains__(self, strategy_type: StrategyType) -> bool:
        return strategy_type in self._strategies

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        gateway: OrderGateway,
        clock: Optional[Callable[[], datetime]] = None,
        data_sources: Optional[Dict[StrategyDataSource, DataSource]] = None,
    ) -> "StrategyRegistry":
        """Build one engine per configured strategy variant.

        Args:
            config: Engine configuration.
            gateway: Order gateway shared by every engine.
            clock: Returns the current aware UTC time.
            data_sources: Pre-built sources by kind (built on demand otherwise).
        """
        sources: Dict[StrategyDataSource, DataSource] = dict(data_sources or {})
        registry = cls()

        for strategy_type, strategy_config in config.strategies.items():
            kind = strategy_config.data_source
            if kind not in sources:
                sources[kind] = build_data_source(kind, config.data_sources, clock=clock)

            registry.register(
                OrbStrategy(
                    strategy_type=strategy_type,
                    data_source=sources[kind],
                    gateway=gateway,
                    config=strategy_config,
                    session=config.session,
                    clock=clock,
                )
            )

        logger.info(f"Strategy registry built: {[t.value for t in registry.types()]}")

        return registry

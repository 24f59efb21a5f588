"""
Breakout configuration - loaded from environment (BREAKOUT_*).

Every run-time options model (risk limits, backtest execution, optimizer)
takes its defaults from here, so a deployment can retune a run without code
changes.
"""

from datetime import time
from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict

from breakout.core.enums import MarketSessionMode, SameBarFillRule


class Settings(BaseSettings):
    """Application settings from environment."""

    model_config = SettingsConfigDict(
        env_prefix="BREAKOUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Market
    market_timezone: str = "America/New_York"
    timeframe: str = "5Min"

    # Account / risk limits
    account_equity: Decimal = Decimal("25000")
    risk_per_trade_pct: Decimal = Decimal("0.003")
    max_position_notional: Decimal = Decimal("10000")
    max_shares: int = 5_000
    max_stop_distance_pct: Decimal = Decimal("0.015")
    min_stop_distance_pct: Decimal = Decimal("0.001")
    min_reward_to_risk_r: Decimal = Decimal("1.8")
    max_trades_per_day: int = 6
    max_daily_loss_pct: Decimal = Decimal("0.01")
    symbol_cooldown_minutes: int = 30
    risk_slippage_pct: Decimal = Decimal("0.0005")

    # Backtest execution model
    slippage_pct: Decimal = Decimal("0.0005")
    commission_per_trade: Decimal = Decimal("0")
    flatten_time: time = time(15, 50)
    max_bars_to_fill_entry: int = 6
    entry_limit_buffer_pct: Decimal = Decimal("0")
    session_mode: MarketSessionMode = MarketSessionMode.REGULAR
    same_bar_rule: SameBarFillRule = SameBarFillRule.CONSERVATIVE_STOP_FIRST
    window_size: int = 400  # bars kept per symbol for scanner lookback

    # Optimizer
    optimize_trials: int = 500
    optimize_seed: int = 12345
    optimize_top_n: int = 10
    optimize_min_filled_trades: int = 20
    optimize_max_workers: int = 0  # 0 = one worker per CPU
    optimize_out_dir: str = "_BacktestOptimizationRuns"
    weight_avg_r: Decimal = Decimal("100")
    weight_profit_factor: Decimal = Decimal("10")
    weight_win_rate: Decimal = Decimal("100")
    weight_max_drawdown_pct: Decimal = Decimal("50")
    weight_no_fill_pct: Decimal = Decimal("5")
    min_win_rate: Decimal = Decimal("0.5")
    train_weight: Decimal = Decimal("0.6")
    test_weight: Decimal = Decimal("0.4")

    # Logging
    log_level: str = "INFO"


settings = Settings()


def get_settings() -> Settings:
    """Return application settings."""
    return settings

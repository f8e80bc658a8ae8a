# Janelas de tempo dos relatórios (dia/semana/mês/total), calculadas em Python
# para que as consultas funcionem igual no Postgres e no SQLite
from datetime import datetime, timedelta

from lavajato.errors import ValidationFailed

PERIODS = ("day", "week", "month", "total")

# Nomes em português aceitos pelas rotas de serviços
PERIOD_ALIASES = {
    "dia": "day",
    "semana": "week",
    "mes": "month",
    "mês": "month",
}


def normalize_period(period: str | None, default: str = "month") -> str:
    if not period:
        return default
    value = PERIOD_ALIASES.get(period.strip().lower(), period.strip().lower())
    if value not in PERIODS:
        raise ValidationFailed(f"Período inválido: {period!r}. Use day, week, month ou total")
    return value


def period_start(period: str, now: datetime | None = None) -> datetime | None:
    """Início da janela do período; None para 'total' (sem limite)."""
    today = (now or datetime.utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "day":
        return today
    if period == "week":
        return today - timedelta(days=7)
    if period == "month":
        return today - timedelta(days=30)
    return None

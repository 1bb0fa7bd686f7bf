import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

from binance.client import Client
import urllib3

from .strategies.legend_candle.models import SymbolInfo

logger = logging.getLogger(__name__)

# Para metadados públicos (exchangeInfo) as chaves de API não são necessárias.
# A opção verify=False pode gerar avisos. Vamos desabilitá-los.
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

_client: Optional[Client] = None
_symbol_info_cache: Dict[Tuple[str, str], SymbolInfo] = {}


def get_client() -> Client:
    global _client
    if _client is None:
        _client = Client("", "", requests_params={"timeout": 20, "verify": False})
    return _client


def decimals_from_step(step: Optional[str], fallback: int) -> int:
    """Número de casas decimais de um tickSize/stepSize (ex: "0.00010000" -> 4)."""
    if not step:
        return max(0, int(fallback))
    try:
        exponent = Decimal(step).normalize().as_tuple().exponent
    except InvalidOperation:
        return max(0, int(fallback))
    return max(0, -int(exponent))


def _raw_symbol(symbol: str, market_type: str, sub_type: str) -> Optional[dict]:
    client = get_client()
    if market_type == "spot":
        return client.get_symbol_info(symbol)
    if sub_type == "um":
        info = client.futures_exchange_info()
    elif sub_type == "cm":
        info = client.futures_coin_exchange_info()
    else:
        raise ValueError(f"Unsupported futures subType: {sub_type}")
    return next((s for s in info.get("symbols", []) if s.get("symbol") == symbol), None)


def parse_symbol_info(raw: dict) -> SymbolInfo:
    filters = {f.get("filterType"): f for f in raw.get("filters", [])}
    price_filter = filters.get("PRICE_FILTER", {})
    lot_size = filters.get("LOT_SIZE", {})
    base_precision = int(raw.get("baseAssetPrecision", 8))
    quote_precision = int(raw.get("quotePrecision", 8))
    return SymbolInfo(
        symbol=raw["symbol"],
        base_asset=raw.get("baseAsset", ""),
        quote_asset=raw.get("quoteAsset", ""),
        base_asset_precision=base_precision,
        quote_precision=quote_precision,
        price_precision=decimals_from_step(price_filter.get("tickSize"), quote_precision),
        quantity_precision=decimals_from_step(lot_size.get("stepSize"), base_precision),
    )


def fetch_symbol_info(symbol: str, market_type: str = "futures", sub_type: str = "um") -> SymbolInfo:
    """Busca a precisão de preço/quantidade do símbolo (com cache em memória)."""
    key = (f"{market_type}:{sub_type}" if market_type == "futures" else "spot", symbol)
    if key in _symbol_info_cache:
        return _symbol_info_cache[key]

    raw = _raw_symbol(symbol, market_type, sub_type)
    if not raw:
        raise ValueError(f"Symbol {symbol} not found in {market_type} exchange info")
    info = parse_symbol_info(raw)
    logger.info("%s: %d casas decimais de preço", symbol, info.price_precision)
    _symbol_info_cache[key] = info
    return info

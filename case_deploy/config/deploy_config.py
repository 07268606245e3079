"""Load the deploy config file (JSON, or YAML by extension).

Example (config.json):
    {
      "number": 100,
      "symbol": "TARS",
      "sellerFeeBasisPoints": 500,
      "price": 0.5,
      "goLiveDate": "2026-12-01T00:00:00Z",
      "creators": [{"address": "...", "share": 100}],
      "hiddenSettings": null,
      "collectionMint": null
    }

Keys are accepted in camelCase or snake_case.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from case_deploy.core.errors import ConfigError
from case_deploy.core.json_utils import JSONDecodeError, loads
from case_deploy.gateway.base import Creator, HiddenSettings, ProgramSettings

LAMPORTS_PER_SOL = 1_000_000_000

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL.sub("_", key).lower()


def _normalize(data: Any) -> Any:
    if isinstance(data, dict):
        return {_snake(k): _normalize(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_normalize(v) for v in data]
    return data


@dataclass
class DeployConfig:
    number: int
    symbol: str = ""
    seller_fee_basis_points: int = 0
    price: float = 0.0
    is_mutable: bool = True
    retain_authority: bool = True
    go_live_date: Optional[str] = None
    creators: List[Creator] = field(default_factory=list)
    hidden_settings: Optional[HiddenSettings] = None
    sol_treasury_account: Optional[str] = None
    collection_mint: Optional[str] = None

    @property
    def hidden(self) -> bool:
        return self.hidden_settings is not None

    def go_live_timestamp(self) -> Optional[int]:
        if not self.go_live_date:
            return None
        try:
            parsed = datetime.fromisoformat(self.go_live_date.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ConfigError(f"Invalid go_live_date: {self.go_live_date}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp())

    def price_lamports(self) -> int:
        return int(round(self.price * LAMPORTS_PER_SOL))

    def to_program_settings(self, uuid: str = "") -> ProgramSettings:
        return ProgramSettings(
            uuid=uuid,
            price_lamports=self.price_lamports(),
            symbol=self.symbol,
            seller_fee_basis_points=self.seller_fee_basis_points,
            items_available=self.number,
            creators=tuple(self.creators),
            is_mutable=self.is_mutable,
            retain_authority=self.retain_authority,
            go_live_date=self.go_live_timestamp(),
            hidden_settings=self.hidden_settings,
            treasury_wallet=self.sol_treasury_account,
        )

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DeployConfig":
        data = _normalize(raw)
        if not isinstance(data, dict):
            raise ConfigError("config root must be an object")
        try:
            number = int(data["number"])
        except KeyError as exc:
            raise ConfigError("config is missing 'number'") from exc
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid 'number': {data.get('number')!r}") from exc

        try:
            creators = [
                Creator(address=str(c["address"]), share=int(c["share"]), verified=bool(c.get("verified", False)))
                for c in data.get("creators") or []
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"invalid creators entry: {exc}") from exc

        hidden = None
        raw_hidden = data.get("hidden_settings")
        if raw_hidden:
            try:
                hidden = HiddenSettings(name=str(raw_hidden["name"]), uri=str(raw_hidden["uri"]), hash=str(raw_hidden["hash"]))
            except (KeyError, TypeError) as exc:
                raise ConfigError(f"invalid hidden_settings: {exc}") from exc

        return cls(
            number=number,
            symbol=str(data.get("symbol") or ""),
            seller_fee_basis_points=int(data.get("seller_fee_basis_points") or 0),
            price=float(data.get("price") or 0.0),
            is_mutable=bool(data.get("is_mutable", True)),
            retain_authority=bool(data.get("retain_authority", True)),
            go_live_date=data.get("go_live_date"),
            creators=creators,
            hidden_settings=hidden,
            sol_treasury_account=data.get("sol_treasury_account"),
            collection_mint=data.get("collection_mint"),
        )


def load_deploy_config(path: str) -> DeployConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file '{path}' not found")
    try:
        text = p.read_text(encoding="utf-8")
        if p.suffix.lower() in (".yaml", ".yml"):
            raw = yaml.safe_load(text)
        else:
            raw = loads(text)
    except (OSError, yaml.YAMLError, JSONDecodeError) as exc:
        raise ConfigError(f"Failed to parse config file '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain an object")
    return DeployConfig.from_dict(raw)

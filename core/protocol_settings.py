"""
Protocol Settings Model for Wand Protocol.

Global parameter registry: default values and valid ranges for every vault
parameter, plus the treasury that collects protocol fees. Vaults read their
parameters from here unless they hold an override.
"""

from dataclasses import dataclass

from atomic import Stateful
from event_log import EventLog

SETTINGS_DECIMALS = 10
ONE = 10 ** SETTINGS_DECIMALS

HOUR = 3600
YEAR = 365 * 24 * HOUR


def percent(value):
    """Converts a percentage (e.g. 150 or 0.1) into settings decimals."""
    return int(round(value * ONE / 100))


@dataclass
class ParamConfig:
    """Default value and inclusive bounds of a parameter."""
    default: int
    min: int
    max: int


DEFAULT_PARAMS = {
    # Annual interest rate, paid in leveraged tokens
    "Y": ParamConfig(percent(2), 0, ONE),
    # AAR thresholds
    "AARU": ParamConfig(percent(200), ONE, 10 * ONE),
    "AART": ParamConfig(percent(150), ONE, 10 * ONE),
    "AARS": ParamConfig(percent(130), ONE, 10 * ONE),
    "AARC": ParamConfig(percent(110), ONE, 10 * ONE),
    # Redemption fees, also slope and hourly rate of the discount bonus
    "C1": ParamConfig(percent(0.1), 0, ONE),
    "C2": ParamConfig(percent(0.5), 0, ONE),
    # Seconds of pause after AAR first drops below AARC
    "CircuitBreakPeriod": ParamConfig(HOUR, 0, 30 * 24 * HOUR),
    # Share of settled interest/yields routed to the BelowAARS pool
    "YieldsSplit": ParamConfig(percent(50), 0, ONE),
}


class ProtocolSettings(Stateful):
    """
    Simulates the ProtocolSettings contract.
    """

    _state_fields = ("treasury", "params")

    def __init__(self, owner, treasury, events=None):
        self.owner = owner
        self.treasury = treasury
        self.decimals = SETTINGS_DECIMALS

        # name -> ParamConfig
        self.params = {name: ParamConfig(c.default, c.min, c.max)
                       for name, c in DEFAULT_PARAMS.items()}

        self.events = events if events is not None else EventLog()

    def _only_owner(self, caller):
        if caller != self.owner:
            raise ValueError("Ownable: caller is not the owner")

    def set_treasury(self, caller, treasury):
        self._only_owner(caller)
        if not treasury:
            raise ValueError("Zero address detected")
        self.treasury = treasury
        self.events.emit("ProtocolSettings", "UpdateTreasury", treasury=treasury)

    def upsert_param_config(self, caller, name, default, min_value, max_value):
        self._only_owner(caller)
        if not (min_value <= default <= max_value):
            raise ValueError("Invalid param or value")
        self.params[name] = ParamConfig(default, min_value, max_value)
        self.events.emit("ProtocolSettings", "UpsertParamConfig", param=name,
                         default=default, min=min_value, max=max_value)

    def param_default_value(self, name):
        if name not in self.params:
            raise ValueError("Invalid param or value")
        return self.params[name].default

    def is_valid_param(self, name, value):
        config = self.params.get(name)
        return config is not None and config.min <= value <= config.max

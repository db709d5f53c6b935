from __future__ import annotations

import logging
from typing import Sequence

from .contract import Apparatus, DeviceModel, PowerFlow
from .errors import InvalidConfiguration
from .grid_following import GFL_TYPES, GridFollowingParams, GridFollowingVSI, PLLMode
from .grid_forming import GridFormingParams, GridFormingVSI, VoltageControl
from .inductor import Inductor, InductorParams

logger = logging.getLogger(__name__)


def parse_apparatus(code) -> Apparatus:
    try:
        return Apparatus(int(code))
    except (TypeError, ValueError):
        raise InvalidConfiguration("apparatus", code, "Unknown apparatus type") from None


def _power_flow(power_flow) -> PowerFlow:
    if power_flow is None:
        return PowerFlow()
    if isinstance(power_flow, PowerFlow):
        return power_flow
    return PowerFlow.from_vector(power_flow)


def build_device(
    apparatus_type,
    para: Sequence[float] | None = None,
    power_flow: PowerFlow | Sequence[float] | None = None,
    pll_mode: PLLMode | str = PLLMode.VQ,
    voltage_control: VoltageControl | str = VoltageControl.DOUBLE_LOOP,
    damping: bool = True,
) -> DeviceModel:
    """
    Build a device from its apparatus code, parameter vector and power flow.

    para=None takes the device defaults. power_flow is a PowerFlow or the
    5-tuple (P, Q, V, xi, w). pll_mode applies to the grid-following types,
    voltage_control and damping to the grid-forming type.
    """
    code = parse_apparatus(apparatus_type)
    pf = _power_flow(power_flow)

    if code in GFL_TYPES:
        params = GridFollowingParams() if para is None else GridFollowingParams.from_vector(para)
        device = GridFollowingVSI(params=params, power_flow=pf, apparatus=code, pll_mode=pll_mode)
    elif code == Apparatus.GFM_DROOP:
        params = GridFormingParams() if para is None else GridFormingParams.from_vector(para)
        device = GridFormingVSI(
            params=params, power_flow=pf, voltage_control=voltage_control, damping=damping
        )
    else:
        params = InductorParams() if para is None else InductorParams.from_vector(para)
        device = Inductor(params=params, power_flow=pf)

    logger.debug("Built %s (apparatus %d) at %s", type(device).__name__, int(code), pf)
    return device

"""
Keyword parameter extraction for free-text slips.

Pulls ``conf``, ``odds``, ``fse``, ``tys``, ``fid``, the mode and a remark
out of normalized slip text.  Every step deletes the span it matched, so
the text left over for team scanning holds only team names and entries::

    "伯恩茅斯胜/平曼联,conf3.5,odds8.1,fse0.9"
        params   -> conf [35], odds [8.1], fse [90]
        residual -> "伯恩茅斯胜/平曼联"

Steps run in a fixed order: remark, mode, fse, tys, conf, odds, fid.
Numbers that do not parse, or fall outside a field's range, are dropped.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from quickslip.core.engine_config import FID_LADDER, MODE_OPTIONS
from quickslip.core.odds_math import to_float

logger = logging.getLogger(__name__)

# Latin keywords must not be glued to other Latin letters/digits.  Chinese
# characters on either side are fine ("曼联conf3.5").
_LB = r"(?<![A-Za-z0-9_])"
_RB = r"(?![A-Za-z])"
# Chinese mode words must stand apart from neighbouring ideographs ("稳" but not "稳健").
_CJK_LB = r"(?<![\u3400-\u9fff])"
_CJK_RB = r"(?![\u3400-\u9fff])"

# A number not followed by more number text or a score separator ("2-1").
_NUM = r"(?:\d+(?:\.\d+)?|\.\d+)(?!\d|\.\d|\s*[-:]\s*\d)"
_NUM_RE = re.compile(_NUM)
_VALUE_LIST = rf"{_NUM}(?:\s*[,/]\s*{_NUM}|\s+{_NUM})*"

_SIDE = r"(home|away|主|客)"
_SIDE_HOME = {"home", "主"}

MODE_ALIASES: tuple[tuple[str, str], ...] = (
    ("stable", "常规-稳"),
    ("稳", "常规-稳"),
    ("leverage", "常规-杠杆"),
    ("杠杆", "常规-杠杆"),
    ("aggressive", "常规-激进"),
    ("激进", "常规-激进"),
    ("gamble", "赌一把"),
    ("赌", "赌一把"),
    ("insurance", "保险产品"),
    ("保险", "保险产品"),
    ("half", "半彩票半保险"),
)

_REMARK_RE = re.compile(rf"(?:{_LB}(?:remark|note){_RB}|备注)\s*:?\s*(.*)$", re.IGNORECASE | re.DOTALL)

_FSE_SIDE_RES = (
    re.compile(rf"{_LB}fse[_\s]*{_SIDE}\s*[:=]?\s*({_VALUE_LIST})", re.IGNORECASE),
    re.compile(rf"(?:{_LB}(home|away)|(主|客))[_\s]*fse\s*[:=]?\s*({_VALUE_LIST})", re.IGNORECASE),
)
_FSE_RE = re.compile(rf"{_LB}fse{_RB}\s*[:=]?\s*({_VALUE_LIST})", re.IGNORECASE)

_TYS_CODE = r"([SMLH])(?![A-Za-z])"
_TYS_SIDE_RES = (
    re.compile(rf"{_LB}tys[_\s]*{_SIDE}\s*[:=]?\s*{_TYS_CODE}", re.IGNORECASE),
    re.compile(rf"(?:{_LB}(home|away)|(主|客))[_\s]*tys\s*[:=]?\s*{_TYS_CODE}", re.IGNORECASE),
)
_TYS_RE = re.compile(
    rf"{_LB}tys\s*[:=]?\s*([SMLH])(?:\s*[/,\s]\s*([SMLH]))?(?![A-Za-z])", re.IGNORECASE
)

# Value-after forms ("35conf", "8.1赔率"): the number must start a token.
_LEADING_NUM = rf"(?<![A-Za-z\d.:\-])({_NUM})\s*"

_CONF_WORD = rf"(?:(?:confidence|conf){_RB}|信心)"
_CONF_BEFORE_RE = re.compile(
    rf"(?:{_LB}(?:confidence|conf){_RB}|信心)\s*[:=]?\s*({_VALUE_LIST})", re.IGNORECASE
)
_CONF_AFTER_RE = re.compile(rf"{_LEADING_NUM}{_CONF_WORD}", re.IGNORECASE)

_ODDS_BEFORE_RE = re.compile(
    rf"(?:{_LB}odds{_RB}|赔率|@)\s*[:=]?\s*({_VALUE_LIST})", re.IGNORECASE
)
_ODDS_AFTER_RE = re.compile(rf"{_LEADING_NUM}(?:odds{_RB}|赔率)", re.IGNORECASE)

_FID_BEFORE_RE = re.compile(rf"{_LB}fid{_RB}\s*[:=]?\s*({_VALUE_LIST})", re.IGNORECASE)
_FID_AFTER_RE = re.compile(rf"{_LEADING_NUM}fid{_RB}", re.IGNORECASE)

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedParameters:
    """Everything the extractor pulled out of one slip."""
    conf: list[int] = field(default_factory=list)
    odds: list[float] = field(default_factory=list)
    odds_groups: list[list[float]] = field(default_factory=list)
    fse: list[int] = field(default_factory=list)
    fse_home: list[int] = field(default_factory=list)
    fse_away: list[int] = field(default_factory=list)
    tys: list[str] = field(default_factory=list)
    tys_home: list[str] = field(default_factory=list)
    tys_away: list[str] = field(default_factory=list)
    fid: list[float] = field(default_factory=list)
    mode: Optional[str] = None
    remark: str = ""

    @property
    def has_side_markers(self) -> bool:
        return bool(self.fse_home or self.fse_away or self.tys_home or self.tys_away)


@dataclass
class ExtractionResult:
    params: ParsedParameters
    warnings: list[str]
    residual_text: str


# ---------------------------------------------------------------------------
# Value normalization
# ---------------------------------------------------------------------------

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def snap_fid(value: float) -> float:
    """Nearest FID rung; the lower rung wins a tie.  Non-finite input gives 0.4."""
    if not math.isfinite(value):
        return 0.4
    best, best_dist = 0.4, math.inf
    for rung in FID_LADDER:
        dist = abs(value - rung)
        if dist < best_dist:
            best, best_dist = rung, dist
    return best


def normalize_conf_value(raw: str) -> tuple[Optional[int], Optional[str]]:
    """
    Confidence text -> (percent, warning).

    ``<= 1`` is a fraction (0.35 -> 35), ``10..100`` is already a percent.
    ``1 < v < 10`` is ambiguous: it is read as tenths (3.5 -> 35) with a
    warning, or rounded as-is with an "ambiguous" warning when tenths would
    land outside 10..95.  Values above 100 and negatives are dropped.
    """
    num = to_float(raw)
    if not math.isfinite(num) or num < 0:
        return None, None
    if num <= 1.0:
        return _round_half_up(num * 100), None
    if 10 <= num <= 100:
        return _round_half_up(num), None
    if num > 100:
        return None, f"conf {raw} is above 100 and was ignored"

    reconstructed = _round_half_up(num * 10)
    if 10 <= reconstructed <= 95:
        return reconstructed, f"conf {raw} read as {reconstructed}%"
    return _round_half_up(num), f"conf {raw} is ambiguous, read as {_round_half_up(num)}%"


def normalize_fse_value(raw: str) -> Optional[int]:
    """FSE text -> percent.  ``<= 1`` is scaled by 100; above 100 is dropped."""
    num = to_float(raw)
    if not math.isfinite(num) or num < 0:
        return None
    if num <= 1.0:
        return _round_half_up(num * 100)
    if num <= 100:
        return _round_half_up(num)
    return None


def _numbers(text: str) -> list[str]:
    return _NUM_RE.findall(text)


def _side_of(token: str) -> str:
    return "home" if token.lower() in _SIDE_HOME else "away"


# ---------------------------------------------------------------------------
# Extraction steps
# ---------------------------------------------------------------------------

def _strip(pattern: re.Pattern[str], text: str, handle: Callable[[re.Match[str]], None]) -> str:
    """Run ``handle`` on every match and blank the matched spans."""
    def _replace(match: re.Match[str]) -> str:
        handle(match)
        return " "
    return pattern.sub(_replace, text)


def _extract_remark(text: str, params: ParsedParameters) -> str:
    match = _REMARK_RE.search(text)
    if not match:
        return text
    params.remark = match.group(1).strip()
    return text[: match.start()]


def _extract_mode(text: str, params: ParsedParameters) -> str:
    lowered = text.lower()
    for mode in MODE_OPTIONS:
        idx = lowered.find(mode.lower())
        if idx != -1:
            params.mode = mode
            return text[:idx] + " " + text[idx + len(mode):]

    for alias, mode in MODE_ALIASES:
        if alias.isascii():
            pattern = re.compile(rf"{_LB}{re.escape(alias)}(?![A-Za-z0-9])", re.IGNORECASE)
        else:
            pattern = re.compile(rf"{_CJK_LB}{re.escape(alias)}{_CJK_RB}")
        match = pattern.search(text)
        if match:
            params.mode = mode
            return text[: match.start()] + " " + text[match.end():]
    return text


def _extract_fse(text: str, params: ParsedParameters) -> str:
    def side_first(match: re.Match[str]) -> None:
        side, values = match.group(1), match.group(2)
        _add_fse(getattr(params, f"fse_{_side_of(side)}"), values)

    def fse_first(match: re.Match[str]) -> None:
        side = match.group(1) or match.group(2)
        _add_fse(getattr(params, f"fse_{_side_of(side)}"), match.group(3))

    text = _strip(_FSE_SIDE_RES[0], text, side_first)
    text = _strip(_FSE_SIDE_RES[1], text, fse_first)
    return _strip(_FSE_RE, text, lambda m: _add_fse(params.fse, m.group(1)))


def _add_fse(target: list[int], values: str) -> None:
    for raw in _numbers(values):
        value = normalize_fse_value(raw)
        if value is None:
            logger.debug("Dropped out-of-range fse value %r", raw)
            continue
        target.append(value)


def _extract_tys(text: str, params: ParsedParameters) -> str:
    def qualified_after(match: re.Match[str]) -> None:
        getattr(params, f"tys_{_side_of(match.group(1))}").append(match.group(2).upper())

    def qualified_before(match: re.Match[str]) -> None:
        side = match.group(1) or match.group(2)
        getattr(params, f"tys_{_side_of(side)}").append(match.group(3).upper())

    def global_codes(match: re.Match[str]) -> None:
        params.tys.extend(code.upper() for code in match.groups() if code)

    text = _strip(_TYS_SIDE_RES[0], text, qualified_after)
    text = _strip(_TYS_SIDE_RES[1], text, qualified_before)
    return _strip(_TYS_RE, text, global_codes)


def _extract_conf(text: str, params: ParsedParameters, warnings: list[str]) -> str:
    def collect(match: re.Match[str]) -> None:
        for raw in _numbers(match.group(1)):
            value, warning = normalize_conf_value(raw)
            if warning:
                logger.warning("Confidence input: %s", warning)
                warnings.append(warning)
            if value is not None:
                params.conf.append(value)

    text = _strip(_CONF_BEFORE_RE, text, collect)
    return _strip(_CONF_AFTER_RE, text, collect)


def _extract_odds(text: str, params: ParsedParameters) -> str:
    def collect(match: re.Match[str]) -> None:
        group = []
        for raw in _numbers(match.group(1)):
            value = to_float(raw)
            if value > 1.0:
                group.append(value)
            else:
                logger.debug("Dropped odds value %r (must be > 1)", raw)
        if group:
            params.odds.extend(group)
            params.odds_groups.append(group)

    text = _strip(_ODDS_BEFORE_RE, text, collect)
    return _strip(_ODDS_AFTER_RE, text, collect)


def _extract_fid(text: str, params: ParsedParameters) -> str:
    def collect(match: re.Match[str]) -> None:
        for raw in _numbers(match.group(1)):
            params.fid.append(snap_fid(to_float(raw)))

    text = _strip(_FID_BEFORE_RE, text, collect)
    return _strip(_FID_AFTER_RE, text, collect)


def extract_parameters(text: str) -> ExtractionResult:
    """
    Extract keyword parameters from normalized slip text.

    Args:
        text: Output of :func:`quickslip.core.text_normalizer.normalize_text`.

    Returns:
        ExtractionResult with the parameters, human-readable warnings
        (ambiguous confidence values) and the residual text with every
        matched span removed and whitespace collapsed.
    """
    params = ParsedParameters()
    warnings: list[str] = []

    cleaned = _extract_remark(text or "", params)
    cleaned = _extract_mode(cleaned, params)
    cleaned = _extract_fse(cleaned, params)
    cleaned = _extract_tys(cleaned, params)
    cleaned = _extract_conf(cleaned, params, warnings)
    cleaned = _extract_odds(cleaned, params)
    cleaned = _extract_fid(cleaned, params)

    residual = _WHITESPACE_RE.sub(" ", cleaned).strip()
    logger.debug(
        "Extracted params conf=%s odds_groups=%s fse=%s/%s/%s tys=%s/%s/%s fid=%s mode=%s",
        params.conf, params.odds_groups,
        params.fse, params.fse_home, params.fse_away,
        params.tys, params.tys_home, params.tys_away,
        params.fid, params.mode,
    )
    return ExtractionResult(params=params, warnings=warnings, residual_text=residual)

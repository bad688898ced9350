"""
Sketch Sentinel - MCP Server

Exposes the Arduino sketch analyzer to editor assistants via the Model
Context Protocol:

  1.  list_boards          - boards in the hardware database
  2.  set_board            - select the board used by board-specific checks
  3.  board_info           - pins, buses and limits of a board
  4.  analyze_sketch       - diagnostics + pin map + memory for sketch text
  5.  analyze_file         - same, for a sketch on disk
  6.  analyze_sketch_json  - raw wire result (diagnostics, pinMap, memory)
  7.  pin_map              - per-pin usage and conflict table
  8.  memory_report        - RAM / Flash estimate
  9.  explain_rule         - rationale and fix for a diagnostic code
 10.  coverage_report      - every rule the engine can emit, by category
 11.  describe_symbol      - register, pin, bus, I2C address or type at a cursor
"""

import itertools
import json
import logging
import os
import sys
import threading

from mcp.server.fastmcp import FastMCP

# Ensure the sketch_sentinel package is importable when run as a script
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from sketch_sentinel.config import config
from sketch_sentinel.models import DiagnosticSeverity, SourceText
from sketch_sentinel.rule_catalog import (
    format_rule_explanation, get_all_rules, get_rule, get_rules_by_category,
)
from sketch_sentinel.session import AnalysisResult, AnalysisSession

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("Sketch Sentinel")

session = None
_session_lock = threading.Lock()
_versions = itertools.count(1)

_SEVERITY_ICONS = {
    DiagnosticSeverity.ERROR: "❌ Error",
    DiagnosticSeverity.WARNING: "⚠ Warning",
    DiagnosticSeverity.INFO: "ℹ Info",
}
_STATUS_ICONS = {"valid": "✅", "warning": "⚠", "conflict": "❌"}


def _get_session() -> AnalysisSession:
    """Create the shared session (and load the hardware database) on first use."""
    global session
    with _session_lock:
        if session is None:
            session = AnalysisSession()
        return session


def _run(code: str, board_id: str = "", uri: str = "untitled:sketch.ino") -> AnalysisResult:
    # Each tool call is a new document version, closed again once analysed
    s = _get_session()
    try:
        result = s.analyze(code, next(_versions), board_id=board_id or None, uri=uri)
    finally:
        s.close(uri)
    if result is None:
        raise RuntimeError("analysis superseded by a newer request")
    return result


def _board_line(result: AnalysisResult) -> str:
    board = _get_session().hardware_db.get_board(result.board_id) if result.board_id else None
    return f"**Board**: {board.name} (`{board.board_id}`)" if board else "**Board**: none (board-specific checks off)"


# ═══════════════════════════════════════════════════════════════════════
#  Formatting
# ═══════════════════════════════════════════════════════════════════════

def _format_diagnostics(result: AnalysisResult) -> str:
    if not result.diagnostics:
        return "No issues found. ✅\n"

    md = "| Line | Severity | Code | Message |\n"
    md += "|------|----------|------|---------|\n"
    ordered = sorted(result.diagnostics, key=lambda d: (d.line, int(d.severity)))
    for d in ordered:
        message = d.message.replace("|", "\\|")
        md += f"| {d.line + 1} | {_SEVERITY_ICONS[d.severity]} | `{d.code}` | {message} |\n"
    return md


def _format_pin_map(result: AnalysisResult) -> str:
    if not result.pin_map:
        return "No pin usage detected.\n"

    md = "| Pin | Label | Status | Uses | Note |\n"
    md += "|-----|-------|--------|------|------|\n"
    for record in sorted(result.pin_map, key=lambda r: r.pin):
        uses = ", ".join(sorted({u.kind.value for u in record.usages}))
        lines = sorted({u.position.line + 1 for u in record.usages})
        icon = _STATUS_ICONS.get(record.status, record.status)
        md += (f"| {record.pin} | {record.pin_label} | {icon} {record.status} | "
               f"{uses} (line {', '.join(str(n) for n in lines)}) | {record.message} |\n")
    return md


def _format_memory(result: AnalysisResult) -> str:
    memory = result.memory
    if memory is None:
        return "Memory estimate unavailable.\n"
    ram, flash = memory.ram, memory.flash

    md = "| Region | Used | Limit | % |\n"
    md += "|--------|------|-------|---|\n"
    md += f"| RAM | {ram.total} B | {memory.limits.ram} B | {ram.percentage}% |\n"
    md += f"| Flash | {flash.total} B | {memory.limits.flash} B | {flash.percentage}% |\n\n"

    md += "**RAM breakdown**: "
    md += (f"globals {ram.global_variables} B, stack ~{ram.stack_estimate} B, "
           f"framework {ram.framework_overhead} B, heap {ram.dynamic_overhead} B\n")

    live = [i for i in ram.items if i.size > 0]
    if live:
        md += "\n| Global | Type | Bytes |\n|--------|------|-------|\n"
        for item in sorted(live, key=lambda i: -i.size)[:15]:
            suffix = f"[{item.array_size}]" if item.array_size > 1 else ""
            md += f"| `{item.name}{suffix}` | {item.type} | {item.size} |\n"

    if flash.items:
        md += "\n**Large string literals** (consider `F()`):\n"
        for item in flash.items:
            md += f"- `\"{item.content}\"` ({item.size} B)\n"

    if memory.warnings:
        md += "\n"
        for w in memory.warnings:
            md += f"- **{w.severity}** ({w.category}): {w.message}\n"
    return md


def _format_report(result: AnalysisResult, title: str) -> str:
    errors = result.count(DiagnosticSeverity.ERROR)
    warnings = result.count(DiagnosticSeverity.WARNING)
    infos = result.count(DiagnosticSeverity.INFO)
    conflicts = sum(1 for r in result.pin_map if r.status == "conflict")

    md = f"# Sketch Analysis - {title}\n\n"
    md += _board_line(result) + "\n"
    md += f"**Diagnostics**: {errors} error(s), {warnings} warning(s), {infos} info\n"
    if result.memory is not None:
        md += (f"**Memory**: RAM {result.memory.ram.percentage}%, "
               f"Flash {result.memory.flash.percentage}%\n")
    md += f"**Pins**: {len(result.pin_map)} used, {conflicts} conflict(s)\n\n"

    md += "## Diagnostics\n\n" + _format_diagnostics(result) + "\n"
    md += "## Pin Map\n\n" + _format_pin_map(result) + "\n"
    md += "## Memory\n\n" + _format_memory(result)
    md += "\n💡 Use `explain_rule` with a diagnostic code for rationale and fixes.\n"
    return md


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1 - List Boards
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_boards() -> str:
    """
    Lists every board in the hardware database with its memory sizes.
    The active board is marked.
    """
    try:
        s = _get_session()
        boards = s.hardware_db.list_boards()
        if not boards:
            return "No board descriptors loaded. Check SENTINEL_HARDWARE_DB."

        md = "# Supported Boards\n\n"
        md += "| | Id | Name | MCU | RAM | Flash | FQBN |\n"
        md += "|---|----|------|-----|-----|-------|------|\n"
        for b in boards:
            active = "▶" if b.board_id == s.board_id else ""
            fqbn = ", ".join(f"`{f}`" for f in b.fqbn)
            md += (f"| {active} | `{b.board_id}` | {b.name} | {b.mcu} | "
                   f"{b.ram_size} B | {b.flash_size} B | {fqbn} |\n")
        return md
    except Exception as e:
        logger.exception("list_boards failed")
        return f"Error listing boards: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2 - Set Board
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def set_board(board_id: str) -> str:
    """
    Selects the board used for pin, PWM, interrupt and memory-limit checks.

    Args:
        board_id: Board id (e.g. 'arduino-uno') or FQBN (e.g. 'arduino:avr:uno').
                  An empty string turns board-specific checks off.
    """
    try:
        s = _get_session()
        if board_id and s.hardware_db.resolve_board_id(board_id) is None:
            known = ", ".join(f"`{b.board_id}`" for b in s.hardware_db.list_boards())
            return f"Error: Unknown board `{board_id}`. Known boards: {known}"

        results = s.set_board(board_id or None)
        board = s.board
        if board is None:
            return "Board cleared. Board-specific checks are off."
        md = f"✅ Active board: **{board.name}** (`{board.board_id}`)\n"
        md += f"RAM {board.ram_size} B, Flash {board.flash_size} B\n"
        if results:
            md += f"\nRe-analysed {len(results)} open document(s)."
        return md
    except Exception as e:
        logger.exception("set_board failed")
        return f"Error setting board: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 3 - Board Info
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def board_info(board_id: str = "") -> str:
    """
    Shows pins, buses, constraints and aliases of a board (default: active board).
    """
    try:
        s = _get_session()
        board = s.hardware_db.get_board(board_id) if board_id else s.board
        if board is None:
            return f"Error: Unknown board `{board_id}`." if board_id else "No board selected."

        pins = board.pins
        md = f"# {board.name} (`{board.board_id}`)\n\n"
        md += f"**MCU**: {board.mcu}  |  **Architecture**: {board.architecture}  |  "
        md += f"**Clock**: {board.clock_speed // 1000000} MHz\n"
        md += f"**RAM**: {board.ram_size} B  |  **Flash**: {board.flash_size} B  |  "
        md += f"**EEPROM**: {board.eeprom_size} B\n\n"

        md += "## Pins\n"
        md += f"- **Digital**: {', '.join(map(str, pins.digital))}\n"
        md += f"- **Analog**: {', '.join(map(str, pins.analog)) or 'none'}\n"
        md += f"- **PWM**: {', '.join(map(str, pins.pwm)) or 'none'}\n"
        interrupts = "any GPIO" if pins.interrupts is None else ", ".join(map(str, pins.interrupts))
        md += f"- **External interrupts**: {interrupts}\n"
        if pins.touch:
            md += f"- **Touch**: {', '.join(map(str, pins.touch))}\n"
        if board.strapping_pins:
            md += f"- **Strapping**: {', '.join(map(str, board.strapping_pins))}\n"
        if board.input_only_pins:
            md += f"- **Input only**: {', '.join(map(str, board.input_only_pins))}\n"

        md += "\n## Buses\n"
        for bus in ("uart", "i2c", "spi"):
            for port in getattr(board.peripherals, bus):
                roles = ", ".join(f"{role.upper()}={pin}" for role, pin in port.pins.items())
                md += f"- **{port.name}** ({bus.upper()}): {roles}\n"
        if board.peripherals.wifi or board.peripherals.bluetooth:
            radios = [name for name, on in (("WiFi", board.peripherals.wifi),
                                            ("Bluetooth", board.peripherals.bluetooth)) if on]
            md += f"- **Radio**: {', '.join(radios)}\n"

        c = board.constraints
        md += "\n## Constraints\n"
        md += f"- Max stack depth: {c.max_stack_depth or 'n/a'} B\n"
        md += f"- Max ISR time: {c.max_isr_time or 'n/a'} µs\n"
        md += f"- Max loop time: {c.max_loop_time or 'n/a'} ms\n"

        if board.pin_aliases:
            aliases = ", ".join(f"`{k}`={v}" for k, v in board.pin_aliases.items())
            md += f"\n## Aliases\n{aliases}\n"
        return md
    except Exception as e:
        logger.exception("board_info failed")
        return f"Error reading board info: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 4 - Analyze Sketch
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def analyze_sketch(code: str, board_id: str = "") -> str:
    """
    Analyzes Arduino sketch source text: hardware diagnostics, pin map and a
    RAM / Flash estimate, as a markdown report.

    Args:
        code: Full sketch source (.ino / .cpp).
        board_id: Optional board id or FQBN; switches the active board.
    """
    try:
        return _format_report(_run(code, board_id), "sketch")
    except Exception as e:
        logger.exception("analyze_sketch failed")
        return f"Error analyzing sketch: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 5 - Analyze File
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def analyze_file(file_path: str, board_id: str = "") -> str:
    """
    Analyzes a sketch file on disk (same report as analyze_sketch).
    """
    if not os.path.exists(file_path):
        return f"Error: File not found at {file_path}"
    try:
        source = SourceText.from_file(file_path)
        if source is None:
            return f"Error: Cannot read `{file_path}` (binary or unreadable)."
        result = _run(source.text, board_id, uri=source.uri)
        return _format_report(result, os.path.basename(file_path))
    except Exception as e:
        logger.exception("analyze_file failed")
        return f"Error analyzing file: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 6 - Analyze Sketch (JSON)
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def analyze_sketch_json(code: str, board_id: str = "") -> str:
    """
    Returns the raw analysis result as JSON:
    {uri, version, diagnostics, pinMap, memory}.
    """
    try:
        return json.dumps(_run(code, board_id).to_dict(), indent=2)
    except Exception as e:
        logger.exception("analyze_sketch_json failed")
        return json.dumps({"error": str(e)})


# ═══════════════════════════════════════════════════════════════════════
#  Tool 7 - Pin Map
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def pin_map(code: str, board_id: str = "") -> str:
    """
    Lists every pin the sketch touches, how it is used, and whether the
    combination of uses conflicts.
    """
    try:
        result = _run(code, board_id)
        return "# Pin Map\n\n" + _board_line(result) + "\n\n" + _format_pin_map(result)
    except Exception as e:
        logger.exception("pin_map failed")
        return f"Error building pin map: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 8 - Memory Report
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def memory_report(code: str, board_id: str = "") -> str:
    """
    Estimates RAM and Flash usage of the sketch against the board's limits.
    """
    try:
        result = _run(code, board_id)
        return "# Memory Report\n\n" + _board_line(result) + "\n\n" + _format_memory(result)
    except Exception as e:
        logger.exception("memory_report failed")
        return f"Error estimating memory: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 9 - Explain Rule
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def explain_rule(rule_code: str) -> str:
    """
    Returns rationale, examples and fix strategy for a diagnostic code
    (e.g. 'missing-volatile', 'pin-conflict').
    """
    rule_code = rule_code.strip().strip("`")
    if get_rule(rule_code) is None:
        known = ", ".join(sorted(get_all_rules()))
        return f"Unknown rule: `{rule_code}`\n\nKnown codes: {known}"
    return format_rule_explanation(rule_code)


# ═══════════════════════════════════════════════════════════════════════
#  Tool 10 - Coverage Report
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def coverage_report(category: str = "") -> str:
    """
    Returns a markdown report of all diagnostic codes, grouped by category,
    with counts per severity.

    Args:
        category: Optional category name (e.g. 'I2C', 'esp32') to list only
                  that category's rules.
    """
    rules = get_all_rules()
    names = list(dict.fromkeys(r.category for r in rules.values()))
    if category:
        names = [n for n in names if n.lower() == category.strip().lower()]
        if not names:
            known = ", ".join(dict.fromkeys(r.category for r in rules.values()))
            return f"Unknown category: `{category}`\n\nKnown categories: {known}"

    report = "# Sketch Sentinel Coverage Report\n\n"
    report += f"**Total Rules Supported**: {len(rules)}\n"
    board_specific = sum(1 for r in rules.values() if r.board_specific)
    report += f"**Board-specific**: {board_specific} (need an active board)\n\n"
    report += "| Category | Count | Errors | Warnings | Info | Rules |\n"
    report += "|----------|-------|--------|----------|------|-------|\n"

    for name in names:
        members = get_rules_by_category(name)
        by_sev = {sev: sum(1 for r in members if r.severity == sev) for sev in DiagnosticSeverity}
        codes = ", ".join(f"`{r.code}`" for r in members)
        report += (f"| **{name}** | {len(members)} | {by_sev[DiagnosticSeverity.ERROR]} | "
                   f"{by_sev[DiagnosticSeverity.WARNING]} | {by_sev[DiagnosticSeverity.INFO]} | "
                   f"{codes} |\n")
    return report


# ═══════════════════════════════════════════════════════════════════════
#  Tool 11 - Describe Symbol
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def describe_symbol(code: str, line: int, character: int, board_id: str = "") -> str:
    """
    Explains the symbol at a cursor position: register bits, pin
    capabilities, Wire / SPI / Serial functions, I2C device addresses,
    core functions and constants, and type sizes on the active board.

    Args:
        code: Full sketch source.
        line: 0-based line of the cursor.
        character: 0-based column of the cursor.
        board_id: Optional board id or FQBN; switches the active board.
    """
    try:
        info = _get_session().describe_symbol(code, line, character, board_id=board_id or None)
        if info is None:
            return "No hardware information for the symbol at this position."
        return info.markdown
    except Exception as e:
        logger.exception("describe_symbol failed")
        return f"Error describing symbol: {e}"


def main():
    logging.basicConfig(
        stream=sys.stderr,
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if hasattr(mcp, "_tool_manager") and hasattr(mcp._tool_manager, "_tools"):
            tools = list(mcp._tool_manager._tools.keys())
            logger.info("Sketch Sentinel starting with %d tools: %s", len(tools), tools)
    except Exception as e:
        logger.debug("Cannot inspect tools: %s", e)
    mcp.run()


if __name__ == "__main__":
    main()

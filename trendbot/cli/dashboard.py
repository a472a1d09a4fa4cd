"""CLI dashboard — prints a replay summary to the console."""


def print_summary(summary: dict) -> str:
    """Format and print a replay summary.

    Args:
        summary: Dict returned by ``ReplayRunner.run``.

    Returns:
        The formatted string (also printed to stdout).
    """
    balance = summary.get("final_balance")
    currency = summary.get("currency", "")
    balance_str = f"{balance:,.2f} {currency}" if balance is not None else "N/A"
    reasons = summary.get("reasons", {})

    lines = [
        "──────────────── TrendBot Replay ────────────────",
        f"  Symbol:          {summary.get('symbol', 'N/A')}",
        f"  Strategy:        {summary.get('strategy', 'N/A')}",
        f"  Bars:            {summary.get('bars', 0)}",
        f"  Orders:          {summary.get('orders', 0)}",
        f"  Stop moves:      {summary.get('trailing_modifications', 0)}",
        f"  Closed / open:   {summary.get('closed_positions', 0)} / "
        f"{summary.get('open_positions', 0)}",
        f"  Final balance:   {balance_str}",
    ]
    if reasons:
        lines.append("  Outcomes:")
        for reason, count in sorted(reasons.items(), key=lambda kv: -kv[1]):
            lines.append(f"    {reason:<22}{count}")
    lines.append("─────────────────────────────────────────────────")
    output = "\n".join(lines)
    print(output)
    return output

# pscore/admin/reports.py

from datetime import datetime
from typing import List, Optional

from tabulate import tabulate  # We'll use this for nice table formatting

from pscore.models.score import LeaderboardEntry, ScoreHistoryEntry

def _format_timestamp(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return timestamp

def _bullets(items: List[str], marker: str) -> str:
    return "\n".join(f"  {marker} {item}" for item in items)

def render_report(entry: ScoreHistoryEntry, username: str) -> str:
    """Full productivity report as plain text"""
    score = entry.score_data
    sections = [
        "Productivity Utilization Report",
        f"Generated for {username} at {_format_timestamp(entry.timestamp)}",
        "",
        f"Utilization Score: {score.utilization_score:g}",
        f"Relative Standing (Percentile Estimates): {score.percentile_estimates}",
        "",
        f"Why {score.utilization_score:g}? The Breakdown",
        "Inputs Observed:",
        _bullets(score.inputs_observed, "-"),
        "High-Leverage Behaviors Present:",
        _bullets(score.high_leverage_behaviors, "+"),
        "Missed Leverage (Your Opportunity):",
        _bullets(score.missed_leverage, "x"),
        "",
        "Cohort Comparison",
        tabulate(
            [[c.cohort, c.standing, c.reason] for c in score.cohort_comparison],
            headers=["Cohort", "Your Standing (est.)", "Why"],
            tablefmt="simple",
        ),
        "",
        "What Moves You +10 Points Fast",
    ]
    for step in score.what_moves_you:
        sections.append(f"{step.title}:")
        sections.append(_bullets(step.points, "*"))

    sections += [
        "",
        "Minimal Rubric Behind the Score",
        tabulate(
            [[r.category, f"{r.score:g}/{r.max_score:g}"] for r in score.minimal_rubric],
            headers=["Category", "Score"],
            tablefmt="simple",
        ),
        "",
        score.call_to_action,
    ]
    return "\n".join(sections)

def render_history(history: List[ScoreHistoryEntry], selected_index: Optional[int]) -> str:
    if not history:
        return "No past scores found."
    rows = [
        [
            i,
            _format_timestamp(entry.timestamp),
            f"{entry.score_data.utilization_score:.1f}",
            "Currently Viewing" if i == selected_index else "",
        ]
        for i, entry in enumerate(history)
    ]
    return tabulate(rows, headers=["#", "Generated", "Score", ""], tablefmt="grid")

def render_leaderboard(
    title: str,
    entries: List[LeaderboardEntry],
    is_ranked: bool,
    current_run_hash: Optional[str] = None,
) -> str:
    if not entries:
        return f"{title}\nNo entries yet."

    rows = []
    for i, entry in enumerate(entries):
        name = entry.username
        if entry.run_hash == current_run_hash:
            name += " (You)"
        if entry.is_verified:
            name += " [verified]"
        row = [name, f"{entry.score:.1f}"]
        if is_ranked:
            row.insert(0, f"{i + 1}.")
        rows.append(row)

    headers = ["User", "Score"]
    if is_ranked:
        headers.insert(0, "Rank")
    return f"{title}\n" + tabulate(rows, headers=headers, tablefmt="grid")

"""
Summarize a set of scored reps and write session_summary.json + report.html + plots.
"""
from __future__ import annotations

import html
import json
import logging
import os
from collections import Counter
from typing import Any, Optional, Sequence, Union

from .exercises import DISPLAY_NAMES, CameraMode, Exercise
from .scoring import RepResult, RuleId

logger = logging.getLogger(__name__)

# Messages that are not faults and do not count towards tips.
_NON_FAULTS = {RuleId.GOOD_FORM, RuleId.LOW_VISIBILITY, RuleId.DEPTH_BONUS}
# Most frequent faults turned into tips.
MAX_TIPS = 3

_TIPS = {
    RuleId.ROM_INSUFFICIENT: "Work through a fuller range of motion on every rep.",
    RuleId.ASYMMETRY: "Keep both sides moving evenly.",
    RuleId.KNEE_VALGUS: "Push your knees out in line with your toes.",
    RuleId.KNEE_OVER_TOE: "Sit back into your hips so your knees stay over your feet.",
    RuleId.TORSO_LEAN: "Keep your chest up to reduce forward lean.",
    RuleId.EXCESSIVE_MOMENTUM: "Brace your torso; let your back do the pulling.",
    RuleId.TOO_FAST: "Aim for a slower, controlled tempo.",
    RuleId.SHOULDER_SHRUG: "Set your shoulders down before each pull.",
    RuleId.ELBOW_BEND: "Lock your elbows and lighten the weight if needed.",
}


def _cv(vals: Sequence[float]) -> Optional[float]:
    if len(vals) < 2:
        return None
    m = sum(vals) / len(vals)
    if abs(m) < 1e-6:
        return None
    var = sum((v - m) ** 2 for v in vals) / (len(vals) - 1)
    return (var ** 0.5) / abs(m)


def summarize_results(results: Sequence[RepResult]) -> dict[str, Any]:
    """Aggregate per-rep results; fault counts are keyed by rule id string."""
    scores = [r.score for r in results]
    counts: Counter[str] = Counter()
    for r in results:
        for fb in r.feedback:
            if fb.rule_id not in _NON_FAULTS:
                counts[fb.rule_id.value] += 1
    cv = _cv(scores)
    return {
        "rep_count": len(results),
        "average_score": round(sum(scores) / len(scores)) if scores else 0,
        "best_score": max(scores) if scores else None,
        "worst_score": min(scores) if scores else None,
        "score_cv": round(cv, 3) if cv is not None else None,
        "rule_counts": dict(counts.most_common()),
    }


def _overall(average_score: int) -> str:
    if average_score >= 90:
        return "Great form overall."
    if average_score >= 70:
        return "Decent form with a few consistency issues."
    return "Form needs attention; focus on the tips below."


def _tips(rule_counts: dict[str, int]) -> list[str]:
    tips = []
    for rule_id, _ in list(rule_counts.items())[:MAX_TIPS]:
        tip = _TIPS.get(RuleId(rule_id))
        if tip:
            tips.append(tip)
    if not tips:
        tips.append("Nice work. Keep the same cues next set.")
    return tips


def write_session_report(
    results: Sequence[RepResult],
    output_dir: str,
    exercise: Union[Exercise, str] = Exercise.SQUAT,
    camera_mode: Union[CameraMode, str, None] = None,
    source: str = "live",
) -> str:
    """
    Write session_summary.json, report.html and (with at least one rep)
    score_by_rep.png into output_dir. Returns the report.html path.
    """
    ex = Exercise.parse(exercise)
    mode = CameraMode.parse(camera_mode).value if camera_mode is not None else None
    os.makedirs(output_dir, exist_ok=True)
    summary = summarize_results(results)
    logger.info(
        "report: source=%s exercise=%s reps=%s average=%s",
        source, ex.value, summary["rep_count"], summary["average_score"],
    )

    summary_path = os.path.join(output_dir, "session_summary.json")
    with open(summary_path, "w") as f:
        json.dump(
            {
                "source": source,
                "exercise": ex.value,
                "camera_mode": mode,
                "summary": summary,
                "reps": [r.to_dict() for r in results],
            },
            f,
            indent=2,
        )

    title = f"{DISPLAY_NAMES[ex]} Report"
    report_lines = [
        "<!DOCTYPE html>",
        f"<html><head><meta charset='utf-8'><title>{html.escape(title)}</title></head><body>",
        f"<h1>{html.escape(title)}</h1>",
        f"<p><b>Source:</b> {html.escape(source)}</p>",
        f"<p><b>Camera:</b> {mode or '--'}</p>",
        f"<p><b>Total reps:</b> {summary['rep_count']}</p>",
    ]
    if results:
        report_lines.append("<h2>Quick summary</h2>")
        report_lines.append(f"<p><b>Overall:</b> {_overall(summary['average_score'])}</p>")
        report_lines.append(
            f"<p><b>Average score:</b> {summary['average_score']} | "
            f"<b>Best:</b> {summary['best_score']} | <b>Worst:</b> {summary['worst_score']}</p>"
        )
        report_lines.append(
            "<p><b>Tips:</b> " + " ".join(html.escape(t) for t in _tips(summary["rule_counts"])) + "</p>"
        )
    else:
        report_lines.append("<p>No reps were completed.</p>")

    col_labels = ["Rep", "Score", "Feedback"]
    report_lines.append("<h2>Per-rep scores</h2>")
    report_lines.append("<table border='1'><tr>" + "".join(f"<th>{c}</th>" for c in col_labels) + "</tr>")
    for i, r in enumerate(results, start=1):
        feedback = "; ".join(f.message for f in r.feedback)
        cells = [i, r.score, html.escape(feedback)]
        tds = "".join(f'<td data-label="{label}">{val}</td>' for label, val in zip(col_labels, cells))
        report_lines.append(f"<tr>{tds}</tr>")
    report_lines.append("</table></body></html>")

    report_path = os.path.join(output_dir, "report.html")
    with open(report_path, "w") as f:
        f.write("\n".join(report_lines))

    if results:
        try:
            _plot_scores([r.score for r in results], os.path.join(output_dir, "score_by_rep.png"))
        except Exception as e:
            logger.warning("report: could not write score plot: %s", e)
    return report_path


def _plot_scores(scores: list[int], path: str) -> None:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    plt.figure(figsize=(6, 4))
    plt.plot(range(1, len(scores) + 1), scores, "o-")
    plt.ylim(0, 105)
    plt.xlabel("Rep")
    plt.ylabel("Form score")
    plt.title("Score by rep")
    plt.savefig(path, dpi=100)
    plt.close()

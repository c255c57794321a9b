"""Content quality-gate pipeline for AI-written blog articles.

Package structure:
    quality_gate/config.py         – paths, API keys, model settings, gate constants
    quality_gate/models.py         – briefs, artifacts, reports, run results
    quality_gate/pipeline/         – outline, complexity gate, fact-check and readability loops, link enforcement
    quality_gate/collaborators/    – Claude, Brave Search, heuristic scoring and duplicate checks
    quality_gate/service.py        – generate(topic_id) with status codes and persistence
    quality_gate/store.py          – SQLite store for users, strategies, topics, posts, usage
    quality_gate/report.py         – grading and human-readable run reports
"""

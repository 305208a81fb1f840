"""
Grant Program Ranker — Production Package
==========================================
Ranks a catalog of grant / subsidy programs against a project profile and
returns a short, deterministic shortlist.

Layer map
─────────────────────────────────────────────────────
  config/       Settings, classification rules & prompt strings
  domain/       Pure business objects (models, exceptions) — no I/O
  ports/        Abstract interfaces (Python Protocols)
  adapters/     Concrete implementations of each Port (JSON catalog, LLMs)
  services/     Cache, classifier, filters, sorter, engine; ports only
  interfaces/   Delivery layer: CLI
  tests/        Full test suite: unit / integration / e2e

Pipeline
─────────────────────────────────────────────────────
  catalog → classifier (memoised via RelevanceCache) → coarse filter
          → scored filter → sorter → shortlist → (optional) narrative LLM
"""
__version__ = "1.0.0"

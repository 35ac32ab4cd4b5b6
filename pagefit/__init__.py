"""
PAGEFIT - Adaptive page-fit control for live resume previews

Converges a preview's content scale (effectively a font-size multiplier) so the
rendered resume fills a fixed-size page without overflowing or looking sparse.

Architecture:
- Fitting Context: fit policy, fit calculator, controller state machine,
  notification adapter
- Utils: logging setup and timestamps shared across contexts
"""

__version__ = "0.1.0"

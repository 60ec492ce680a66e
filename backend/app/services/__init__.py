# -*- coding: utf-8 -*-
# backend/app/services/__init__.py
# =============================================================================
# Engage Admin: сервисный слой
# -----------------------------------------------------------------------------
# Назначение файла:
#   • Единый вход для движка розыгрышей.
#   • SchedulerService импортируется напрямую из services.scheduler_service:
#     он сам зависит от колбэков scheduler/*, которые используют этот пакет.
#
# Важные принципы:
#   • Никакой бизнес-логики здесь нет, только реэкспорт.
# =============================================================================

from __future__ import annotations

from .draw_service import DrawEngine, DrawReport, WinnerDraft, select_winners

__all__ = ["DrawEngine", "DrawReport", "WinnerDraft", "select_winners"]

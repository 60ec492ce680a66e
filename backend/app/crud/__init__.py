"""Engage Admin CRUD facade.

======================================================================
Назначение модуля:
    • Экспортировать CRUD-классы доменных таблиц (призовые циклы).
    • Не содержит бизнес-логики: только доступ к БД.

Запреты:
    • Не добавлять здесь выбор победителей или работу с расписаниями.
======================================================================
"""

from backend.app.crud.cycles_crud import CyclesCRUD

__all__ = ["CyclesCRUD"]

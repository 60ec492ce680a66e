"""Колбэки фоновых задач планировщика: draw, notifications, cleanup."""

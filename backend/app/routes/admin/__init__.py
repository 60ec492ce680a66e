"""Админские роуты Engage Admin."""

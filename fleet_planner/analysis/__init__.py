"""Plots of layouts, schedules and costs."""

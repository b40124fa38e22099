"""Audit engine, run state and the residuals pipeline facade"""

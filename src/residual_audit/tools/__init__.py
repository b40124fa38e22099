"""Normalization, validation, split resolution, reconciliation and metrics"""

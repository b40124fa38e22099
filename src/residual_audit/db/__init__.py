"""Persistence: table schemas and store implementations"""

"""Service layer package for the maintenance workers.

This package contains the archival engine, the weekly notification
scheduler/dispatcher, delivery channels and the periodic loop driver.
"""

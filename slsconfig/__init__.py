"""Logtail input configs, plugin inputs, and a project client for logstores, machine groups, configs and ETL metadata."""

__version__ = "0.1.0"
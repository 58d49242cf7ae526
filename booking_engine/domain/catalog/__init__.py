"""Catalog domain - Providers, services, add-ons and client profiles"""

"""Billing domain - Fee split in integer cents and payment outcome updates"""

"""Package domain - Session ledger and package assignment"""

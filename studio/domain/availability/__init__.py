"""Availability domain - Free session start times"""

"""Ticket bot data layer: the generic entity access layer and the ticket tables built on it."""

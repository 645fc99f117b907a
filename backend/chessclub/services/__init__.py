"""Chess club domain services: rating engine, game ledger, player store.

These are imported by the HTTP blueprints and CLI commands, keeping
transport concerns separate from rating bookkeeping. One instance of each
service lives on the app under ``app.extensions['chessclub']``.
"""
from flask import current_app


class ClubServices:
    def __init__(self, notifier, ledger, players):
        self.notifier = notifier
        self.ledger = ledger
        self.players = players


def get_services() -> ClubServices:
    return current_app.extensions['chessclub']

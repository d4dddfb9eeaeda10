from .journal import InMemoryTradeJournal, JournalEntry, TradeJournal

__all__ = [
    "InMemoryTradeJournal",
    "JournalEntry",
    "TradeJournal",
]

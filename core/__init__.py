"""
Historian's Bookshelf core package.

Modules
───────
models         Pydantic data models (BookRecommendation, ReadingList, RecommendationResult)
errors         exception taxonomy (configuration, validation, fetch, persistence)
store          key-value backends (memory, JSON files, SQLite) + typed PersistentStore
recommender    Claude structured-output client: prompt, schema, response validation
favorites      FavoritesManager (toggle semantics, persisted on every change)
reading_lists  ReadingListManager (create/delete/rename, add/remove books)
session        SearchSessionController (Idle/Loading/Success/Error, stale-response guard)
bookshelf      Bookshelf facade: wiring, list selection, JSON view model
events         Observable mixin for snapshot subscribers
"""

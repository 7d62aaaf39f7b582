"""
# Services Package

Business logic of the Tasting Notes API. Each service takes an optional `DocumentStore`
(defaulting to the process-wide one) and builds its collaborators over the same store.

- **`access_policy`**: the access predicate.
- **`feed_merge`**: merge, dedupe, partition and paginate across sources.
- **`note_feed_service`**: every read path that returns notes.
- **`note_service`**: note mutations, likes and comments.
- **`follow_service`**: follow edges, follow requests and family members.
- **`activity_service`**: activity writer and activity feed.
- **`notification_service`**: notification fanout and inbox.
- **`bookmark_service`**: saved notes.
- **`user_service`**: principal records and lookups.
"""

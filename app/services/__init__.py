# Services package.
#
# Each module exposes async functions that encapsulate business logic and
# database access for one aggregate:
#
#   article_service  list / create / get / update / pick_best / delete
#   comment_service  threaded comments and the comment-deletion path
#   tag_service      tag lookup, tag creation, cached all-tags list
#   user_service     article owners
#
# Every function takes an AsyncSession first so the router layer controls
# the transaction boundary via the ``get_db`` dependency.  Failures are
# raised as ``app.exceptions.ServiceError`` subclasses.

"""Progress analytics backend for the mobile quiz application.

The package stores completed quiz attempts and turns them into the
derived statistics shown on the progress screen: accuracy, streak,
average score, subject/topic rollups, score trends and difficulty
buckets, filtered by a selectable time window.
"""

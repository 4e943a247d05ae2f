"""
Courses (classroom + course builder).

- Courses hold modules, modules hold lessons; siblings are ordered by order_index
- Lessons play an external video link (normalised to an embed URL) or an uploaded file
- Learner completion flags roll up into a per-course enrollment progress percentage
"""

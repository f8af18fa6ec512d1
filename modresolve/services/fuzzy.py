"""
模糊匹配

名称相似度置信度、多余词检测、编辑距离与下载量流行度。
"""

from modresolve.models.api import popularity_confidence

POPULAR_DOWNLOAD_THRESHOLD = 1000
EXTRA_WORDS_MAX_RATIO = 150
POPULAR_BOOST = 5

_SEPARATORS = " -_."


def normalize(text: str) -> str:
    """小写并移除空格、连字符、下划线和点"""
    return "".join(c for c in text.lower() if c not in _SEPARATORS)


def levenshtein_distance(a: str, b: str) -> int:
    """字符级编辑距离"""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(
                min(
                    previous[j] + 1,  # 删除
                    current[j - 1] + 1,  # 插入
                    previous[j - 1] + cost,  # 替换
                )
            )
        previous = current
    return previous[-1]


def calculate_confidence(
    query: str,
    candidate: str,
    downloads: int,
    popular_threshold: int = POPULAR_DOWNLOAD_THRESHOLD,
) -> int:
    """
    计算名称相似度置信度 (0-100)

    - 忽略大小写完全相同: 100
    - 候选名称包含查询: 下载量达到阈值为 90，否则 85
    - 其他: 基于编辑距离的相似度，热门项目额外 +5
    """
    query_lower = query.strip().lower()
    candidate_lower = candidate.strip().lower()

    if not query_lower or not candidate_lower:
        return 0

    if query_lower == candidate_lower:
        return 100

    popular = downloads >= popular_threshold

    if query_lower in candidate_lower:
        return 90 if popular else 85

    distance = levenshtein_distance(query_lower, candidate_lower)
    max_len = max(len(query_lower), len(candidate_lower))
    similarity = 100 - (distance * 100) // max_len
    if popular:
        similarity += POPULAR_BOOST
    return max(0, min(100, similarity))


def has_extra_words(
    query: str, candidate: str, max_ratio: int = EXTRA_WORDS_MAX_RATIO
) -> bool:
    """
    候选名称是否比查询多出过多内容

    比较归一化后的长度比例，超过 max_ratio% 视为多余词。
    """
    norm_query = normalize(query)
    if not norm_query:
        return False
    norm_candidate = normalize(candidate)
    return len(norm_candidate) * 100 // len(norm_query) > max_ratio


__all__ = [
    "POPULAR_DOWNLOAD_THRESHOLD",
    "EXTRA_WORDS_MAX_RATIO",
    "normalize",
    "levenshtein_distance",
    "calculate_confidence",
    "has_extra_words",
    "popularity_confidence",
]

# Keyword tables for heuristic intent analysis.
#
# Tables are ordered lists: when a message contains keywords of several
# entries, the first entry wins.

from typing import List, Tuple

KeywordTable = List[Tuple[str, Tuple[str, ...]]]

ACTION_KEYWORDS: KeywordTable = [
    ("summarize", ("summarize", "summary", "tldr", "总结", "概括", "摘要", "要約", "まとめ")),
    ("extract", ("extract", "get", "find", "scrape", "提取", "抓取", "获取", "抽出")),
    ("reply", ("reply", "respond", "answer", "回复", "回答", "返信")),
    ("translate", ("translate", "翻译", "翻訳")),
    ("explain", ("explain", "what is", "what does", "解释", "什么是", "説明")),
    ("search", ("search", "find", "look for", "搜索", "查找", "検索")),
    ("help", ("help", "how to", "how do", "帮助", "怎么", "ヘルプ")),
    ("create", ("create", "make", "generate", "创建", "生成", "作成")),
    ("delete", ("delete", "remove", "删除", "移除", "削除")),
    ("stop", ("stop", "cancel", "abort", "停止", "取消", "中止")),
]

TARGET_KEYWORDS: KeywordTable = [
    ("page", ("page", "this page", "current page", "页面", "当前页面", "このページ")),
    ("selection", ("selection", "selected", "highlighted", "选中", "选择的", "選択")),
    ("post", ("post", "tweet", "this post", "帖子", "这条", "この投稿")),
    ("memory", ("memory", "knowledge", "记忆", "知识库", "メモリ")),
    ("rule", ("rule", "rules", "规则", "ルール")),
    ("persona", ("persona", "style", "人设", "风格", "ペルソナ")),
]

PAGE_REFERENCE_WORDS = ("the page", "this page", "这个页面", "このページ")
SELECTION_REFERENCE_WORDS = ("the selection", "selected text", "选中的", "選択したテキスト")
PREVIOUS_REFERENCE_WORDS = ("it", "that", "this", "它", "那个", "这个", "刚才", "それ", "これ")

STOP_WORDS = dict(ACTION_KEYWORDS)["stop"]
CONFIRMATION_WORDS = ("yes", "ok", "sure", "confirm", "好", "是", "对", "确认", "はい", "確認")
NEGATION_WORDS = ("no", "cancel", "stop", "不", "否", "取消", "いいえ", "キャンセル")

# Entity names recognised in extract requests, CJK synonyms mapped to English
ENTITY_TYPES: List[Tuple[str, str]] = [
    ("email", "email"),
    ("phone", "phone"),
    ("url", "url"),
    ("price", "price"),
    ("邮箱", "email"),
    ("电话", "phone"),
    ("链接", "url"),
]

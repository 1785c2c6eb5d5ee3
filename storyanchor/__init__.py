"""StoryAnchor: 长篇小说 AI 续写的一致性约束管线。"""

__version__ = "0.1.0"

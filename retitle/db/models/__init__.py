from retitle.db.models.article import Article, ArticleType, StatusCode

__all__ = ["Article", "ArticleType", "StatusCode"]

class MarketplaceError(Exception):
    """Базовая ошибка движка цен"""


class CartValidationError(MarketplaceError):
    """Строка корзины не может быть посчитана (товар/магазин не найден, кол-во <= 0)"""

    def __init__(self, message: str, product_id=None):
        super().__init__(message)
        self.product_id = product_id


class UsageLimitExceeded(MarketplaceError):
    """Лимит использований акции исчерпан на момент записи"""

    def __init__(self, promotion_id: int, buyer_key: str = ""):
        super().__init__(f"Usage limit reached for promotion {promotion_id}")
        self.promotion_id = promotion_id
        self.buyer_key = buyer_key


class PersistenceError(MarketplaceError):
    """Атомарная запись заказа не удалась, ничего не сохранено"""

import logging
from sqlalchemy.orm import Session
from typing import Optional, List

from app.core.exceptions import InsufficientStockError
from app.models.product import Product, StockTransaction
from app.models.order import Order
from app.models.enums import StockTransactionType
from app.schemas.product import ProductCreate

logger = logging.getLogger(__name__)

def get_product(db: Session, product_id: int, *, show_inactive: bool = False, for_update: bool = False) -> Optional[Product]:
    """
    Get a single product by ID.
    By default, only active products are returned unless show_inactive is True.
    """
    query = db.query(Product).filter(Product.id == product_id)
    if not show_inactive:
        query = query.filter(Product.is_active == True)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()

def create_product(db: Session, *, obj_in: ProductCreate) -> Product:
    """
    Create a new product.
    """
    db_obj = Product(**obj_in.model_dump())
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def decrement_stock(
    db: Session, *, product: Product, units: int, order_id: Optional[int] = None, description: Optional[str] = None
) -> StockTransaction:
    """
    Take `units` stock units out of a locked product row and record one OUT transaction.
    Raises InsufficientStockError instead of letting the counter go negative.
    """
    if product.stock_quantity < units:
        raise InsufficientStockError(product.id, units, product.stock_quantity)
    product.stock_quantity = product.stock_quantity - units
    db_obj = StockTransaction(
        product_id=product.id,
        order_id=order_id,
        quantity=units,
        transaction_type=StockTransactionType.OUT,
        description=description,
    )
    db.add(product)
    db.add(db_obj)
    db.flush()
    return db_obj

def increment_stock(
    db: Session, *, product: Product, units: int, order_id: Optional[int] = None, description: Optional[str] = None
) -> StockTransaction:
    product.stock_quantity = product.stock_quantity + units
    db_obj = StockTransaction(
        product_id=product.id,
        order_id=order_id,
        quantity=units,
        transaction_type=StockTransactionType.IN,
        description=description,
    )
    db.add(product)
    db.add(db_obj)
    db.flush()
    return db_obj

def get_stock_transactions_for_order(
    db: Session, *, order_id: int, transaction_type: Optional[StockTransactionType] = None
) -> List[StockTransaction]:
    query = db.query(StockTransaction).filter(StockTransaction.order_id == order_id)
    if transaction_type:
        query = query.filter(StockTransaction.transaction_type == transaction_type)
    return query.order_by(StockTransaction.id.asc()).all()

def has_stock_released(db: Session, *, order_id: int) -> bool:
    """True when stock has already been taken out for this order."""
    return (
        db.query(StockTransaction.id)
        .filter(
            StockTransaction.order_id == order_id,
            StockTransaction.transaction_type == StockTransactionType.OUT,
        )
        .first()
        is not None
    )

def release_stock_for_order(db: Session, *, order: Order) -> List[StockTransaction]:
    """
    Decrement stock for every item of an order, `quantity * package_size` units each,
    with one OUT transaction per item.
    Does nothing when the order already has OUT transactions, so an order is never
    decremented twice across payment, callback and delivery paths.
    """
    if has_stock_released(db, order_id=order.id):
        logger.warning(f"Stock already released for order {order.id}, skipping decrement.")
        return []

    records = []
    # Lock products in id order so two orders sharing products cannot deadlock.
    for item in sorted(order.items, key=lambda i: i.product_id):
        product = get_product(db, item.product_id, show_inactive=True, for_update=True)
        if product is None:
            raise InsufficientStockError(item.product_id, item.stock_units, 0)
        records.append(decrement_stock(
            db,
            product=product,
            units=item.stock_units,
            order_id=order.id,
            description=f"Stock reduced for Order #{order.id}",
        ))
    logger.info(f"Released stock for order {order.id}: {len(records)} item(s).")
    return records

def return_stock_for_order(db: Session, *, order: Order) -> List[StockTransaction]:
    """
    Put back the stock an order took out, one IN transaction per OUT transaction.
    Orders that never released stock are left alone.
    """
    outgoing = get_stock_transactions_for_order(db, order_id=order.id, transaction_type=StockTransactionType.OUT)
    if not outgoing:
        return []
    if get_stock_transactions_for_order(db, order_id=order.id, transaction_type=StockTransactionType.IN):
        logger.warning(f"Stock already returned for order {order.id}, skipping.")
        return []

    records = []
    for out in sorted(outgoing, key=lambda t: t.product_id):
        product = get_product(db, out.product_id, show_inactive=True, for_update=True)
        records.append(increment_stock(
            db,
            product=product,
            units=out.quantity,
            order_id=order.id,
            description=f"Stock returned for cancelled Order #{order.id}",
        ))
    return records

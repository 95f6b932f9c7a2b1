from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: float
    description: str
    image: str

    @property
    def price_label(self) -> str:
        return format_price(self.price)


PRODUCTS = (
    Product(1, "和田玉貔貅手链", 688.00, "招财进宝，辟邪护身，选用上等和田玉。", "https://picsum.photos/300/300?random=1"),
    Product(2, "纯铜八卦镜", 168.00, "化煞挡灾，镇宅之宝，传统工艺制作。", "https://picsum.photos/300/300?random=2"),
    Product(3, "水晶莲花摆件", 288.00, "净化磁场，提升智慧，带来内心宁静。", "https://picsum.photos/300/300?random=3"),
    Product(4, "六管铜风铃", 128.00, "化解五黄二黑煞气，声音清脆悦耳。", "https://picsum.photos/300/300?random=4"),
    Product(5, "真品五帝钱", 88.00, "招财化煞，防小人，提升运势。", "https://picsum.photos/300/300?random=5"),
    Product(6, "弥勒佛摆件", 398.00, "笑口常开，和气生财，家庭和睦。", "https://picsum.photos/300/300?random=6"),
)


def format_price(price: float) -> str:
    return f"¥{price:,.2f}"


def get_product(product_id: int) -> Optional[Product]:
    for product in PRODUCTS:
        if product.id == product_id:
            return product
    return None

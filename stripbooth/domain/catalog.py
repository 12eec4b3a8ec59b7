# stripbooth/domain/catalog.py
from typing import Dict, List

from stripbooth.delivery.schemas.body import Slot, StickerAsset, TemplateDescriptor
from stripbooth.domain.errors import UnknownTemplate

TEMPLATES: List[TemplateDescriptor] = [
    TemplateDescriptor(
        id="comic-boom", name="Comic Boom", photo_count=3, layout="strip", theme_text="POW! BOOM!",
        icon="💥", color="bg-orange-500", accent="border-yellow-400",
        gradient="from-orange-600 via-yellow-500 to-orange-700",
        decorations=["comic speech bubbles", "BOOM text", "OMG stickers", "bright stars"],
    ),
    TemplateDescriptor(
        id="midnight-manor", name="Midnight Manor", photo_count=4, layout="grid", theme_text="SPOOKY NIGHT",
        icon="🏰", color="bg-indigo-900", accent="border-purple-500",
        gradient="from-indigo-950 via-purple-900 to-black",
        decorations=["haunted castle silhouette", "flying bats", "purple moon glow", "spider webs"],
    ),
    TemplateDescriptor(
        id="pumpkin-patch", name="Pumpkin Patch", photo_count=3, layout="grid", theme_text="HAPPY HALLOWEEN",
        icon="🎃", color="bg-orange-700", accent="border-orange-300",
        gradient="from-orange-800 via-orange-600 to-yellow-700",
        decorations=["smiling pumpkins", "autumn leaves", "twisting vines", "scarecrows"],
    ),
    TemplateDescriptor(
        id="ghostly-white", name="Ghostly Fun", photo_count=1, layout="single", theme_text="BOO TO YOU!",
        icon="👻", color="bg-slate-800", accent="border-white",
        gradient="from-slate-900 via-indigo-900 to-slate-800",
        decorations=["cute floating ghosts", "white spider webs", "shimmering mist"],
    ),
    TemplateDescriptor(
        id="witch-magic", name="Witch Magic", photo_count=4, layout="strip", theme_text="WICKED CUTE",
        icon="🧙‍♀️", color="bg-purple-800", accent="border-emerald-400",
        gradient="from-purple-900 via-emerald-900 to-black",
        decorations=["witch hats", "bubbling cauldrons", "green magic sparkles", "black cats"],
    ),
    TemplateDescriptor(
        id="spider-web", name="Spider Web", photo_count=3, layout="strip", theme_text="WEB OF FUN",
        icon="🕷️", color="bg-neutral-900", accent="border-slate-500",
        gradient="from-black via-slate-900 to-black",
        decorations=["intricate spider webs", "cute hanging spiders", "silver glitter"],
    ),
    TemplateDescriptor(
        id="halloween-circles", name="Halloween Circles", photo_count=3, layout="strip",
        theme_text="NIGHT TO REMEMBER", icon="🧛", color="bg-purple-900", accent="border-orange-400",
        gradient="from-purple-900 via-indigo-900 to-black",
        decorations=["purple gradients", "orange glow", "circular frames"],
        frame_url="/uploads/halloween design 6.png",
        # tuned to the frame art; re-check if the artwork changes
        slots=[
            Slot(x=0.175, y=0.07, width=0.65, height=0.28),
            Slot(x=0.175, y=0.36, width=0.65, height=0.28),
            Slot(x=0.175, y=0.65, width=0.65, height=0.28),
        ],
    ),
]

STICKER_ASSETS: List[StickerAsset] = [
    StickerAsset(type=glyph, label=label)
    for glyph, label in [
        ("👻", "Spooky Ghost"), ("🎃", "Jack-o-Lantern"), ("🦇", "Scary Bat"), ("🕸️", "Cobweb"),
        ("🕷️", "Crawler"), ("🌙", "Moon"), ("🐈‍⬛", "Void Cat"), ("🧙‍♀️", "Witch"),
        ("🎩", "Hat"), ("🧹", "Broomstick"), ("💀", "Skull"), ("🦴", "Bone"),
        ("⚰️", "Coffin"), ("🧪", "Green Potion"), ("🫧", "Cauldron Bubbles"), ("🍬", "Candy Corn"),
        ("🍭", "Sweet Treat"), ("🕯️", "Candle"), ("🧛", "Vampire"), ("🧟", "Zombie"),
        ("🦉", "Hoot Owl"), ("🐀", "Rat"), ("🌲", "Dark Tree"), ("🍂", "Dead Leaves"),
    ]
]

_BY_ID: Dict[str, TemplateDescriptor] = {t.id: t for t in TEMPLATES}

def get_template(template_id: str) -> TemplateDescriptor:
    try:
        return _BY_ID[template_id]
    except KeyError:
        raise UnknownTemplate(f"template '{template_id}' tidak dikenal") from None

"""Tabelas declarativas de correção de texto.

Cada tabela é uma sequência ordenada de (padrão, forma canônica). Os padrões
são aplicados sobre texto já minúsculo e sem acentos, delimitados por \\b.
Toda forma canônica é ponto fixo de todas as tabelas (sem acentos, sem
expansões que voltem a casar um padrão).
"""

from __future__ import annotations

CorrectionTable = tuple[tuple[str, str], ...]

# Ruído de transcrição de voz
VOICE_NOISE: CorrectionTable = (
    (r"m{2,}|e+h+|a+h+h+|u+m+|u+h+|h+m+|e+m+m+|mmh+", ""),
)

# Erros de ortografia/fonética frequentes e números por extenso
COMMON_MISTAKES: CorrectionTable = (
    (r"kwero|quierro|kerer|kero|kiero|qero|qiero|quero|kiero", "quiero"),
    (r"nesesito|necesitio|nesito|nesecito|nececito", "necesito"),
    (r"demen|deme", "dame"),
    (r"grasias|gracia|grax", "gracias"),
    (r"porfa|porfavor|porf|xfa|pls", "por favor"),
    (r"tenes|tiens|tienen", "tienes"),
    (r"kuanto|cuantoo|cuanto\s+vale", "cuanto"),
    (r"catalogo|catalago|katalogo|catalgo", "catalogo"),
    (r"un|una|uno", "1"),
    (r"dos", "2"),
    (r"tres", "3"),
    (r"cuatro", "4"),
    (r"cinco", "5"),
    (r"seis", "6"),
    (r"siete", "7"),
    (r"ocho", "8"),
    (r"nueve", "9"),
    (r"diez", "10"),
    (r"docena", "12"),
)

# Nomes comerciais de produtos (multi-palavra) para a forma do catálogo
PRODUCT_ALIASES: CorrectionTable = (
    (r"sony\s*v?wh\s*1000\s*xm\s*5|sony\s*wh\s*1000xm5", "sony wh 1000 xm5"),
    (r"wh\s*1000\s*xm\s*5|wh1000xm5|wh\s*1000xm5", "wh 1000 xm5"),
    (r"play\s+station|play\s*station", "playstation"),
    (r"air\s*pods", "airpods"),
    (r"power\s*bank", "powerbank"),
)

# Marcas mal escritas
BRAND_FIXES: CorrectionTable = (
    (r"sansung|samzung|samsungg|samsumg|zamsung", "samsung"),
    (r"lenobo|lenoba|lenob|lenovoo", "lenovo"),
    (r"maus|mause|maose|mous|mauss|mauz", "mouse"),
    (r"logitec|logitek|lojitech|logiteck|lojitek", "logitech"),
    (r"adidaz|adidass|adidasz", "adidas"),
    (r"nikke|niqe|nique|naik", "nike"),
    (r"deel|dell+", "dell"),
    (r"assus|azus", "asus"),
    (r"aple|apel|eipol", "apple"),
    (r"xiaom|xiaommi|shaomi|xaomi", "xiaomi"),
    (r"epsom|ebson", "epson"),
    (r"h\s+p", "hp"),
    (r"haiperx|hiperx", "hyperx"),
    (r"reizer|raizer", "razer"),
)

# Sinônimos de categoria
CATEGORY_SYNONYMS: CorrectionTable = (
    (r"audifono|audiofonos|auriculares|auricular|headset|headphones|cascos|casco", "audifonos"),
    (r"notebook|notebooks|portatil|portatiles|laptops", "laptop"),
    (r"raton|ratones|mice|mouses", "mouse"),
    (r"keyboard|teclados", "teclado"),
    (r"pantalla|pantallas|monitores", "monitor"),
    (r"printer|impresoras", "impresora"),
    (r"celu|celulares|movil|smartphone|smartphones", "celular"),
    (r"smart\s*tv|tv|tvs|televisores|television", "televisor"),
    (r"playera|playeras|remera|remeras|polo|polos|camisetas", "camiseta"),
    (r"inalambricos|inalambricas|inalambrica|wireless", "inalambrico"),
    (r"parlante|parlantes|bocina|bocinas|altavoz|altavoces", "parlante"),
)

# Palavras ignoradas em consultas de produto
STOPWORDS: frozenset[str] = frozenset(
    {
        "el", "la", "los", "las", "unos", "unas", "de", "del", "al", "para",
        "por", "con", "sin", "y", "o", "u", "mi", "me", "que", "quiero",
        "necesito", "dame", "busco", "ver", "mostrar", "muestrame",
        "ensename", "precio", "precios", "cuanto", "cuesta", "cuestan",
        "vale", "tienes", "hay", "stock", "disponible", "barato", "baratos",
        "caro", "caros", "oferta", "ofertas", "catalogo", "favor", "gracias",
        "hola", "quisiera", "comprar", "pedir", "unidad", "unidades", "info",
    }
)

# Ordem canônica de aplicação
CORRECTION_PIPELINE: tuple[tuple[str, CorrectionTable], ...] = (
    ("voice_noise", VOICE_NOISE),
    ("common_mistakes", COMMON_MISTAKES),
    ("product_aliases", PRODUCT_ALIASES),
    ("brand_fixes", BRAND_FIXES),
    ("category_synonyms", CATEGORY_SYNONYMS),
)

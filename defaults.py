"""Global default categories, visible to every user and owned by none."""

from models import CategoryType

# (name, type, icon, color)
DEFAULT_CATEGORIES: list[tuple[str, CategoryType, str, str]] = [
    # Fixed expenses
    ("Alquiler", CategoryType.fixed, "home", "#3B82F6"),
    ("Agua", CategoryType.fixed, "droplet", "#06B6D4"),
    ("Luz", CategoryType.fixed, "zap", "#F59E0B"),
    ("Gas", CategoryType.fixed, "flame", "#EF4444"),
    ("Internet", CategoryType.fixed, "wifi", "#8B5CF6"),
    ("Telefono", CategoryType.fixed, "phone", "#10B981"),
    ("Seguros", CategoryType.fixed, "shield", "#6366F1"),
    # Variable expenses
    ("Alimentacion", CategoryType.variable, "utensils", "#F97316"),
    ("Salud", CategoryType.variable, "heart", "#EC4899"),
    ("Transporte", CategoryType.variable, "car", "#14B8A6"),
    ("Ropa", CategoryType.variable, "shirt", "#A855F7"),
    ("Entretenimiento", CategoryType.variable, "gamepad-2", "#F43F5E"),
    ("Regalos", CategoryType.variable, "gift", "#D946EF"),
    ("Snacks", CategoryType.variable, "cookie", "#FB923C"),
    # Debts
    ("Prestamo personal", CategoryType.debt, "banknote", "#DC2626"),
    ("Tarjeta de credito", CategoryType.debt, "credit-card", "#EA580C"),
    ("Hipoteca", CategoryType.debt, "building", "#B91C1C"),
    # Income
    ("Salario", CategoryType.income, "briefcase", "#22C55E"),
    ("Freelance", CategoryType.income, "laptop", "#16A34A"),
    ("Inversiones", CategoryType.income, "trending-up", "#15803D"),
    ("Otros ingresos", CategoryType.income, "plus-circle", "#166534"),
]

"""
Farm taxonomies and ready-made rule sets for the animal-management forms.

Tables are plain data. The rule-set helpers bundle them with the derived-field
rules and validators each form uses, so a page only has to pick the set:

    session = FormLifecycle(
        resolver=production_resolver(),
        synchronizer=DerivedFieldSynchronizer(production_derived_rules()),
        validators=production_validators(),
        name='production',
    )
"""
from typing import List

from formstate.derived_fields import (
    DerivedRule,
    duration_fill_rule,
    duration_from_end_rule,
    end_from_duration_rule,
    total_price_rule,
)
from formstate.taxonomy import CascadeRule, TaxonomyResolver, TaxonomyTable
from formstate.validation import Validator, date_after, non_negative, numeric, required

ANIMAL_TYPES = (
    'cattle', 'sheep', 'goat', 'pig', 'horse', 'poultry', 'chicken', 'duck', 'rabbit', 'other',
)

BREEDS_BY_ANIMAL_TYPE = TaxonomyTable({
    'cattle': ['Angus', 'Holstein', 'Hereford', 'Jersey', 'Simmental', 'Charolais', 'Brahman', 'Other'],
    'sheep': ['Merino', 'Dorper', 'Suffolk', 'Texel', 'Romney', 'Other'],
    'goat': ['Boer', 'Saanen', 'Nubian', 'Alpine', 'Kiko', 'Other'],
    'pig': ['Large White', 'Landrace', 'Duroc', 'Berkshire', 'Hampshire', 'Other'],
    'horse': ['Arabian', 'Thoroughbred', 'Quarter Horse', 'Appaloosa', 'Other'],
    'poultry': ['Rhode Island Red', 'Leghorn', 'Plymouth Rock', 'Sussex', 'Broiler', 'Other'],
    'chicken': ['Rhode Island Red', 'Leghorn', 'Plymouth Rock', 'Sussex', 'Broiler', 'Other'],
    'duck': ['Pekin', 'Muscovy', 'Khaki Campbell', 'Rouen', 'Other'],
    'rabbit': ['New Zealand White', 'Californian', 'Flemish Giant', 'Rex', 'Other'],
    'other': ['Other'],
})

PRODUCT_CATEGORIES = ('milk', 'eggs', 'wool', 'meat', 'honey', 'manure')

MEASUREMENT_UNITS_BY_CATEGORY = TaxonomyTable({
    'milk': ['Liters', 'Gallons'],
    'eggs': ['Dozen', 'Pieces', 'Trays'],
    'wool': ['Kilograms', 'Pounds'],
    'meat': ['Kilograms', 'Pounds'],
    'honey': ['Kilograms', 'Liters', 'Jars'],
    'manure': ['Tons', 'Kilograms'],
})

GRADES_BY_CATEGORY = TaxonomyTable({
    'milk': ['Grade A', 'Grade B', 'Manufacturing'],
    'eggs': ['AA', 'A', 'B'],
    'wool': ['Superfine', 'Fine', 'Medium', 'Coarse'],
    'meat': ['Prime', 'Choice', 'Select', 'Standard'],
    'honey': ['Grade A', 'Grade B', 'Grade C'],
    'manure': ['Composted', 'Raw'],
})

METHODS_BY_CATEGORY = TaxonomyTable({
    'milk': ['Machine Milking', 'Hand Milking'],
    'eggs': ['Free Range', 'Cage Free', 'Barn', 'Caged'],
    'wool': ['Machine Shearing', 'Hand Shearing'],
    'meat': ['Pasture Raised', 'Grain Finished', 'Organic'],
    'honey': ['Extraction', 'Comb Cut', 'Pressed'],
    'manure': ['Windrow Composting', 'Direct Collection'],
})

TASK_TYPES = ('health_check', 'feeding', 'vaccination', 'breeding', 'grooming', 'cleaning', 'other')


def animal_cascade_rules() -> List[CascadeRule]:
    return [CascadeRule('animal_type', 'breed', BREEDS_BY_ANIMAL_TYPE)]


def production_cascade_rules() -> List[CascadeRule]:
    return [
        CascadeRule('product_category.name', 'product_category.measurement_unit', MEASUREMENT_UNITS_BY_CATEGORY),
        CascadeRule('product_category.name', 'product_grade.name', GRADES_BY_CATEGORY),
        CascadeRule('product_category.name', 'production_method.method_name', METHODS_BY_CATEGORY),
    ]


def animal_resolver() -> TaxonomyResolver:
    return TaxonomyResolver(animal_cascade_rules())


def production_resolver() -> TaxonomyResolver:
    return TaxonomyResolver(production_cascade_rules())


def production_derived_rules() -> List[DerivedRule]:
    return [total_price_rule('quantity', 'price_per_unit', 'total_price')]


def task_derived_rules() -> List[DerivedRule]:
    # Persisted end times are trusted on load; the duration follows them
    return [
        end_from_duration_rule(on_load=False),
        duration_from_end_rule(on_load=True),
        duration_fill_rule(on_load=False),
    ]


def animal_validators() -> List[Validator]:
    return [
        required('name', 'animal_type', 'breed', 'gender', 'birth_date'),
        numeric('birth_weight'),
    ]


def production_validators() -> List[Validator]:
    return [
        required('product_category.name', message='Product category name is required.'),
        required('product_grade.name', message='Product grade name is required.'),
        required('production_method.method_name', message='Production method name is required.'),
        required('collector.name', message='Collector name is required.'),
        required('storage_location.name', message='Storage location name is required.'),
        required('quantity', 'price_per_unit', 'total_price', 'production_date',
                 'production_time', 'quality_status', 'trace_number'),
        numeric('quantity', 'price_per_unit', 'total_price'),
    ]


def supplier_validators(creating: bool = True) -> List[Validator]:
    """Email and phone are only required when a supplier is first created."""
    fields = ['name', 'address', 'city', 'state', 'postal_code', 'country',
              'type', 'product_type', 'shop_name']
    if creating:
        fields += ['email', 'phone']
    return [
        required(*fields),
        date_after('contract_start_date', 'contract_end_date'),
        numeric('inventory_level', 'reorder_point', 'minimum_order_quantity',
                'lead_time_days', 'credit_limit', 'tax_rate', 'supplier_rating'),
    ]


def task_validators() -> List[Validator]:
    return [
        required('title', 'task_type', 'start_date', 'start_time', 'end_date', 'end_time'),
        numeric('duration'),
        non_negative('duration', message='The task must end after it starts.'),
    ]

"""
AST-based type inference engine using the Hindley-Milner algorithm.

Every inference rule returns the inferred type together with the
substitution accumulated while inferring it (Algorithm W). Callers thread
that substitution through their sub-expressions and apply it to the
environment before descending.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from mlite.ast.nodes import (
    AliasPattern,
    AndOperation,
    Annotated,
    AnnotatedPattern,
    ArrowType,
    BinaryOperation,
    BoolLiteral,
    ConsOperation,
    ConsPattern,
    Constructor,
    ConstructorPattern,
    Expression,
    FloatLiteral,
    FunctionApplication,
    FunctionCases,
    IfElse,
    IntLiteral,
    Lambda,
    LetDefinition,
    LetIn,
    ListLiteral,
    ListPattern,
    LiteralPattern,
    Match,
    MatchCase,
    NegOperation,
    OperatorSection,
    OrOperation,
    OrPattern,
    Pattern,
    Phrase,
    Program,
    Sequence,
    StringLiteral,
    TopExpression,
    TupleExpression,
    TuplePattern,
    TupleTypeExpression,
    TypeConstructor,
    TypeDeclaration,
    TypeDefinition,
    TypeExpression,
    TypeVariable,
    UnitLiteral,
    UnitPattern,
    Variable,
    VariablePattern,
    WildcardPattern,
)
from mlite.builtins import OPERATORS, PRIMITIVES
from mlite.parser.parser import parse_prelude, parse_type
from mlite.shared.recursion import raised_recursion_limit
from mlite.typechecker.errors import PatternError, TypeInferenceError
from mlite.typechecker.mlite_types import (
    BOOL_TYPE,
    FLOAT_TYPE,
    INT_TYPE,
    LIST_TYPE_NAME,
    STRING_TYPE,
    UNIT_TYPE,
    ConstructorInfo,
    FreshVarGenerator,
    FunctionType,
    TupleType,
    Type,
    TypeCon,
    TypeScheme,
    TypeSubstitution,
    TypeVar,
    function_type,
    generalize,
    list_type,
    normalize_type,
    type_declaration_to_str,
)
from mlite.typechecker.patterns import (
    MatchChecker,
    check_pattern_variables,
    pattern_variables,
)
from mlite.typechecker.unify import UnificationError, occurs_check, unify_one

logger = logging.getLogger(__name__)

TypeBindings = Dict[str, TypeScheme]
InferenceResult = Tuple[Type, TypeSubstitution]
NamedSchemes = List[Tuple[str, TypeScheme]]

BASE_TYPE_ARITIES: Dict[str, int] = {
    "int": 0,
    "float": 0,
    "string": 0,
    "bool": 0,
    "unit": 0,
    LIST_TYPE_NAME: 1,
}

NON_UNIT_STATEMENT_WARNING = (
    "Warning 10 [non-unit-statement]: this expression should have type unit."
)
PARTIAL_APPLICATION_WARNING = (
    "Warning 5 [ignored-partial-application]: this function application is partial, "
    "maybe some arguments are missing."
)


class TypeEnvironment:
    """Type environment mapping identifiers to type schemes."""

    def __init__(self, bindings: Optional[TypeBindings] = None) -> None:
        """Initialize the type environment with optional bindings."""
        self.bindings: TypeBindings = bindings or {}

    def lookup(self, name: str) -> Optional[TypeScheme]:
        """Look up a name in the environment and return its type scheme."""
        return self.bindings.get(name)

    def extend_many(self, new_bindings: Dict[str, TypeScheme]) -> "TypeEnvironment":
        """Return a new environment with multiple additional bindings."""
        combined_bindings = self.bindings.copy()
        combined_bindings.update(new_bindings)
        return TypeEnvironment(combined_bindings)

    def apply_substitution(self, subst: TypeSubstitution) -> "TypeEnvironment":
        """Apply a type substitution to all bindings in the environment."""
        if not subst.mapping:
            return self
        new_bindings = {}
        for name, scheme in self.bindings.items():
            # Closed schemes (all builtins, most toplevel definitions) are unaffected
            if scheme.free_vars():
                scheme = scheme.substitute(subst)
            new_bindings[name] = scheme
        return TypeEnvironment(new_bindings)

    def free_type_vars(self) -> Set[str]:
        """Return all free type variables in this environment."""
        free_vars: Set[str] = set()
        for scheme in self.bindings.values():
            free_vars.update(scheme.free_vars())
        return free_vars


def _normalize_together(*types: Type) -> Tuple[Type, ...]:
    """Normalize several types with one shared renaming of their variables"""
    match normalize_type(TupleType(types)):
        case TupleType(element_types=element_types):
            return element_types
        case other:
            raise TypeError(f"Unexpected normalized type: {other!r}")


def _literal_type(value: object) -> Type:
    match value:
        case bool():
            return BOOL_TYPE
        case int():
            return INT_TYPE
        case float():
            return FLOAT_TYPE
        case _:
            return STRING_TYPE


def _is_function(expr: Expression) -> bool:
    match expr:
        case Lambda() | FunctionCases():
            return True
        case Annotated(expression=inner):
            return _is_function(inner)
        case _:
            return False


def _type_names(typ: Type) -> Set[str]:
    match typ:
        case TypeCon(name=name, args=args):
            names = {name}
            for arg in args:
                names |= _type_names(arg)
            return names
        case FunctionType(param=param, result=result):
            return _type_names(param) | _type_names(result)
        case TupleType(element_types=element_types):
            names = set()
            for elem in element_types:
                names |= _type_names(elem)
            return names
        case _:
            return set()


class TypeInferrer:
    """AST-based Hindley-Milner type inference engine."""

    def __init__(self) -> None:
        """Initialize the type inferrer."""
        self.fresh_var_gen = FreshVarGenerator()
        self.type_arities: Dict[str, int] = dict(BASE_TYPE_ARITIES)
        self.type_aliases: Dict[str, Tuple[List[str], Type]] = {}
        self.constructors: Dict[str, ConstructorInfo] = {}
        self.data_types: Dict[str, List[str]] = {}  # type_name -> [constructor_names]
        self.warnings: List[str] = []
        # Type variables written in annotations, shared across one phrase
        self.annotation_vars: Dict[str, Type] = {}
        self.operator_schemes: Dict[str, TypeScheme] = {
            operator: self.signature_scheme(signature)
            for operator, (signature, _) in OPERATORS.items()
        }

    def fresh_type_var(self) -> TypeVar:
        """Generate a fresh type variable."""
        var_name = self.fresh_var_gen.fresh()
        return TypeVar(var_name)

    def signature_scheme(self, signature: str) -> TypeScheme:
        """Type scheme of a primitive, quantified over every variable in it"""
        typ = self.type_from_expr(parse_type(signature), {}, extend=True)
        return TypeScheme(typ.free_vars(), typ)

    def initial_environment(self) -> TypeEnvironment:
        return TypeEnvironment(
            {
                name: self.signature_scheme(signature)
                for name, (signature, _) in PRIMITIVES.items()
            },
        )

    def _warn(self, message: str) -> None:
        logger.debug("warning: %s", message)
        self.warnings.append(message)

    # Unification with source-level error messages

    def _unify(
        self,
        expected: Type,
        actual: Type,
        subst: TypeSubstitution,
        node: object,
        what: str = "expression",
    ) -> TypeSubstitution:
        """Unify under subst and return the extended substitution."""
        expected = subst.apply(expected)
        actual = subst.apply(actual)
        try:
            unifier = unify_one(actual, expected)
        except UnificationError as e:
            raise TypeInferenceError(
                self._mismatch_message(expected, actual, e, what),
                node,
            ) from e
        if unifier.mapping:
            logger.debug("unify %s ~ %s gives %s", actual, expected, unifier)
        return unifier.compose(subst)

    @staticmethod
    def _mismatch_message(
        expected: Type,
        actual: Type,
        error: UnificationError,
        what: str,
    ) -> str:
        shown_actual, shown_expected, left, right = _normalize_together(
            actual,
            expected,
            error.left,
            error.right,
        )
        if what == "pattern":
            message = (
                f"This pattern matches values of type {shown_actual} "
                f"but a pattern was expected which matches values of type {shown_expected}"
            )
        else:
            message = (
                f"This expression has type {shown_actual} "
                f"but an expression was expected of type {shown_expected}"
            )
        if isinstance(error.left, TypeVar) and occurs_check(error.left.name, error.right):
            message += f". The type variable {left} occurs inside {right}"
        return message

    # Type expressions

    def type_from_expr(
        self,
        node: TypeExpression,
        type_vars: Dict[str, Type],
        extend: bool = False,
    ) -> Type:
        """Convert a written type to a Type.

        Type variables are looked up in `type_vars`; unknown ones are added
        as fresh variables when `extend` is set and are an error otherwise.
        """
        match node:
            case TypeVariable(name=name):
                if name not in type_vars:
                    if not extend:
                        raise TypeInferenceError(
                            f"The type variable '{name} is unbound in this type declaration",
                            node,
                        )
                    type_vars[name] = self.fresh_type_var()
                return type_vars[name]
            case TypeConstructor(name=name, args=args):
                arguments = [self.type_from_expr(arg, type_vars, extend) for arg in args]
                if name in self.type_aliases:
                    params, body = self.type_aliases[name]
                    self._check_type_arity(name, len(params), len(arguments), node)
                    return body.substitute(dict(zip(params, arguments)))
                if name not in self.type_arities:
                    raise TypeInferenceError(f"Unbound type constructor {name}", node)
                self._check_type_arity(name, self.type_arities[name], len(arguments), node)
                return TypeCon(name, tuple(arguments))
            case ArrowType(from_type=from_type, to_type=to_type):
                return FunctionType(
                    self.type_from_expr(from_type, type_vars, extend),
                    self.type_from_expr(to_type, type_vars, extend),
                )
            case TupleTypeExpression(element_types=element_types):
                return TupleType(
                    tuple(self.type_from_expr(elem, type_vars, extend) for elem in element_types),
                )
            case _:
                raise TypeInferenceError(
                    f"Cannot parse type expression: {type(node).__name__}",
                )

    @staticmethod
    def _check_type_arity(name: str, expected: int, given: int, node: object) -> None:
        if expected != given:
            raise TypeInferenceError(
                f"The type constructor {name} expects {expected} argument(s), "
                f"but is here applied to {given} argument(s)",
                node,
            )

    # Type declarations

    def infer_type_definition(self, definition: TypeDefinition) -> None:
        """Register the types and constructors of a `type ... and ...` group."""
        saved = (dict(self.type_arities), dict(self.type_aliases))
        try:
            self._declare_types(definition.declarations)
        except TypeInferenceError:
            self.type_arities, self.type_aliases = saved
            raise

    def _declare_types(self, declarations: List[TypeDeclaration]) -> None:
        seen: Set[str] = set()
        for declaration in declarations:
            if declaration.type_name in seen:
                raise TypeInferenceError(
                    f"Multiple definition of the type name {declaration.type_name}",
                    declaration,
                )
            seen.add(declaration.type_name)
            if len(set(declaration.type_params)) != len(declaration.type_params):
                raise TypeInferenceError(
                    f"A type parameter occurs several times in {declaration.type_name}",
                    declaration,
                )
            # Every name of the group is visible in every declaration of the group
            self.type_arities[declaration.type_name] = len(declaration.type_params)
            self.type_aliases.pop(declaration.type_name, None)

        constructors: Dict[str, ConstructorInfo] = {}
        for declaration in declarations:
            type_vars: Dict[str, Type] = {
                param: TypeVar(param) for param in declaration.type_params
            }
            if declaration.alias is not None:
                body = self.type_from_expr(declaration.alias, type_vars)
                if declaration.type_name in _type_names(body):
                    raise TypeInferenceError(
                        f"The type abbreviation {declaration.type_name} is cyclic",
                        declaration,
                    )
                self.type_aliases[declaration.type_name] = (declaration.type_params, body)
                del self.type_arities[declaration.type_name]
                continue

            tags = declaration.constructor_tags()
            for variant in declaration.constructors:
                if variant.name in constructors:
                    raise TypeInferenceError(
                        f"Two constructors are named {variant.name}",
                        variant,
                    )
                argument = None
                if variant.argument is not None:
                    argument = self.type_from_expr(variant.argument, type_vars)
                constructors[variant.name] = ConstructorInfo(
                    variant.name,
                    declaration.type_name,
                    list(declaration.type_params),
                    argument,
                    tags[variant.name],
                )

        self.constructors.update(constructors)
        for declaration in declarations:
            if declaration.alias is None:
                self.data_types[declaration.type_name] = [
                    variant.name for variant in declaration.constructors
                ]
                logger.debug("declared type %s", declaration.type_name)

    def describe_type_declaration(self, declaration: TypeDeclaration) -> str:
        """Render a registered declaration as the toplevel echoes it."""
        if declaration.alias is not None:
            _, body = self.type_aliases[declaration.type_name]
            return type_declaration_to_str(
                declaration.type_name,
                declaration.type_params,
                alias=body,
            )
        return type_declaration_to_str(
            declaration.type_name,
            declaration.type_params,
            [self.constructors[variant.name] for variant in declaration.constructors],
        )

    def _constructor_info(self, name: str, node: object) -> ConstructorInfo:
        info = self.constructors.get(name)
        if info is None:
            raise TypeInferenceError(f"Unbound constructor {name}", node)
        return info

    def _instantiate_constructor(self, info: ConstructorInfo) -> Tuple[Type, Optional[Type]]:
        """Fresh instance of a constructor: (result type, argument type or None)"""
        mapping: Dict[str, Type] = {
            param: self.fresh_type_var() for param in info.type_params
        }
        result = TypeCon(info.type_name, tuple(mapping[param] for param in info.type_params))
        if info.argument is None:
            return result, None
        return result, info.argument.substitute(mapping)

    @staticmethod
    def _constructor_arity_error(
        name: str,
        expected: int,
        given: int,
        node: object,
    ) -> TypeInferenceError:
        return TypeInferenceError(
            f"The constructor {name} expects {expected} argument(s), "
            f"but is applied here to {given} argument(s)",
            node,
        )

    # Patterns

    def infer_pattern(
        self,
        pattern: Pattern,
        subst: TypeSubstitution,
    ) -> Tuple[Type, Dict[str, Type], TypeSubstitution]:
        """Infer a pattern's type and the types of the variables it binds."""
        check_pattern_variables(pattern)
        bindings: Dict[str, Type] = {}
        pattern_type, subst = self._infer_pattern(pattern, bindings, subst)
        return pattern_type, bindings, subst

    def _infer_pattern(
        self,
        pattern: Pattern,
        bindings: Dict[str, Type],
        subst: TypeSubstitution,
    ) -> InferenceResult:
        pattern_type: Type
        match pattern:
            case WildcardPattern():
                pattern_type = self.fresh_type_var()
            case VariablePattern(name=name):
                pattern_type = self.fresh_type_var()
                bindings[name] = pattern_type
            case LiteralPattern(value=value):
                pattern_type = _literal_type(value)
            case UnitPattern():
                pattern_type = UNIT_TYPE
            case ConstructorPattern(constructor=name, argument=argument):
                info = self._constructor_info(name, pattern)
                pattern_type, argument_type = self._instantiate_constructor(info)
                if argument is None and argument_type is not None:
                    raise self._constructor_arity_error(name, 1, 0, pattern)
                if argument is not None:
                    if argument_type is None:
                        raise self._constructor_arity_error(name, 0, 1, pattern)
                    inner_type, subst = self._infer_pattern(argument, bindings, subst)
                    subst = self._unify(argument_type, inner_type, subst, argument, "pattern")
            case TuplePattern(patterns=patterns):
                element_types = []
                for sub in patterns:
                    element_type, subst = self._infer_pattern(sub, bindings, subst)
                    element_types.append(element_type)
                pattern_type = TupleType(tuple(element_types))
            case ListPattern(patterns=patterns):
                element_type = self.fresh_type_var()
                for sub in patterns:
                    sub_type, subst = self._infer_pattern(sub, bindings, subst)
                    subst = self._unify(element_type, sub_type, subst, sub, "pattern")
                pattern_type = list_type(element_type)
            case ConsPattern(head=head, tail=tail):
                head_type, subst = self._infer_pattern(head, bindings, subst)
                tail_type, subst = self._infer_pattern(tail, bindings, subst)
                pattern_type = list_type(head_type)
                subst = self._unify(pattern_type, tail_type, subst, tail, "pattern")
            case OrPattern(left=left, right=right):
                pattern_type, subst = self._infer_pattern(left, bindings, subst)
                right_bindings: Dict[str, Type] = {}
                right_type, subst = self._infer_pattern(right, right_bindings, subst)
                subst = self._unify(pattern_type, right_type, subst, right, "pattern")
                for name, bound_type in right_bindings.items():
                    subst = self._unify(bindings[name], bound_type, subst, right, "pattern")
            case AliasPattern(pattern=inner, name=name):
                pattern_type, subst = self._infer_pattern(inner, bindings, subst)
                bindings[name] = pattern_type
            case AnnotatedPattern(pattern=inner, type_expr=type_expr):
                pattern_type = self.type_from_expr(type_expr, self.annotation_vars, extend=True)
                inner_type, subst = self._infer_pattern(inner, bindings, subst)
                subst = self._unify(pattern_type, inner_type, subst, inner, "pattern")
            case _:
                raise TypeInferenceError(
                    f"Unhandled pattern type: {type(pattern).__name__}",
                    pattern,
                )
        pattern.ty = subst.apply(pattern_type)
        return pattern_type, subst

    @staticmethod
    def _monomorphic(
        bindings: Dict[str, Type],
        subst: TypeSubstitution,
    ) -> Dict[str, TypeScheme]:
        return {name: TypeScheme(set(), subst.apply(typ)) for name, typ in bindings.items()}

    def _match_checker(self) -> MatchChecker:
        return MatchChecker(self.constructors, self.data_types)

    def _check_irrefutable(self, pattern: Pattern) -> None:
        for warning in self._match_checker().check_irrefutable(pattern):
            self._warn(warning)

    def _check_cases(self, cases: List[MatchCase]) -> None:
        warnings = self._match_checker().check_cases(
            [case.pattern for case in cases],
            [case.guard is not None for case in cases],
        )
        for warning in warnings:
            self._warn(warning)

    # Expressions

    def infer_expr(self, expr: Expression, env: TypeEnvironment) -> InferenceResult:
        """Infer the type of an expression."""
        result_type, subst = self._infer_expr_internal(expr, env)
        expr.ty = subst.apply(result_type)
        return result_type, subst

    def _infer_expr_internal(
        self,
        expr: Expression,
        env: TypeEnvironment,
    ) -> InferenceResult:
        """Internal expression inference without side effects."""
        match expr:
            # Literals
            case IntLiteral():
                return INT_TYPE, TypeSubstitution()
            case FloatLiteral():
                return FLOAT_TYPE, TypeSubstitution()
            case StringLiteral():
                return STRING_TYPE, TypeSubstitution()
            case BoolLiteral():
                return BOOL_TYPE, TypeSubstitution()
            case UnitLiteral():
                return UNIT_TYPE, TypeSubstitution()
            case ListLiteral(elements=elements):
                return self._infer_list_literal(elements, env)
            case TupleExpression(elements=elements):
                return self._infer_tuple(elements, env)

            # Variables and constructors
            case Variable(name=name):
                return self._infer_variable(name, env, expr)
            case Constructor() as constructor:
                return self._infer_constructor(constructor, env)

            # Operators
            case BinaryOperation(operator=operator, left=left, right=right):
                return self._infer_operator(operator, [left, right], env)
            case AndOperation(left=left, right=right):
                return self._infer_operator("&&", [left, right], env)
            case OrOperation(left=left, right=right):
                return self._infer_operator("||", [left, right], env)
            case ConsOperation(head=head, tail=tail):
                return self._infer_cons(head, tail, env)
            case NegOperation(operand=operand, is_float=is_float):
                operand_type, subst = self.infer_expr(operand, env)
                expected = FLOAT_TYPE if is_float else INT_TYPE
                return expected, self._unify(expected, operand_type, subst, operand)
            case OperatorSection(operator=operator):
                scheme = self.operator_schemes[operator]
                return scheme.instantiate(self.fresh_var_gen), TypeSubstitution()

            # Functions
            case FunctionApplication(function=function, argument=argument):
                return self._infer_function_application(function, argument, env)
            case Lambda(params=params, body=body):
                return self._infer_lambda(params, body, env)
            case FunctionCases(cases=cases):
                argument_type = self.fresh_type_var()
                result_type, subst = self._infer_cases(
                    argument_type,
                    cases,
                    env,
                    TypeSubstitution(),
                )
                return subst.apply(FunctionType(argument_type, result_type)), subst
            case Match(scrutinee=scrutinee, cases=cases):
                scrutinee_type, subst = self.infer_expr(scrutinee, env)
                return self._infer_cases(scrutinee_type, cases, env, subst)

            # Control flow
            case IfElse(condition=cond, then_expr=then_expr, else_expr=else_expr):
                return self._infer_if_else(cond, then_expr, else_expr, env)
            case Sequence(first=first, second=second):
                return self._infer_sequence(first, second, env)
            case Annotated(expression=inner, type_expr=type_expr):
                annotation = self.type_from_expr(type_expr, self.annotation_vars, extend=True)
                inner_type, subst = self.infer_expr(inner, env)
                subst = self._unify(annotation, inner_type, subst, inner)
                return subst.apply(annotation), subst
            case LetIn(definition=definition, body=body):
                schemes, subst = self.infer_let_definition(definition, env)
                body_env = env.apply_substitution(subst).extend_many(schemes)
                body_type, body_subst = self.infer_expr(body, body_env)
                return body_type, body_subst.compose(subst)

            case _:
                raise TypeInferenceError(
                    f"Unhandled expression type: {type(expr).__name__}",
                    expr,
                )

    def _infer_list_literal(
        self,
        elements: List[Expression],
        env: TypeEnvironment,
    ) -> InferenceResult:
        """Infer type of list literal."""
        element_type: Type = self.fresh_type_var()
        subst = TypeSubstitution()
        for element in elements:
            current_type, element_subst = self.infer_expr(
                element,
                env.apply_substitution(subst),
            )
            subst = element_subst.compose(subst)
            subst = self._unify(element_type, current_type, subst, element)
        return subst.apply(list_type(element_type)), subst

    def _infer_tuple(
        self,
        elements: List[Expression],
        env: TypeEnvironment,
    ) -> InferenceResult:
        element_types = []
        subst = TypeSubstitution()
        for element in elements:
            element_type, element_subst = self.infer_expr(
                element,
                env.apply_substitution(subst),
            )
            subst = element_subst.compose(subst)
            element_types.append(element_type)
        return subst.apply(TupleType(tuple(element_types))), subst

    def _infer_variable(
        self,
        name: str,
        env: TypeEnvironment,
        node: Expression,
    ) -> InferenceResult:
        """Infer type of a variable by instantiating its scheme."""
        scheme = env.lookup(name)
        if scheme is None:
            raise TypeInferenceError(f"Unbound value {name}", node)
        return scheme.instantiate(self.fresh_var_gen), TypeSubstitution()

    def _infer_constructor(
        self,
        constructor: Constructor,
        env: TypeEnvironment,
    ) -> InferenceResult:
        name = constructor.name
        info = self._constructor_info(name, constructor)
        result_type, argument_type = self._instantiate_constructor(info)
        if constructor.argument is None:
            if argument_type is not None:
                raise self._constructor_arity_error(name, 1, 0, constructor)
            return result_type, TypeSubstitution()
        if argument_type is None:
            raise self._constructor_arity_error(name, 0, 1, constructor)
        actual_type, subst = self.infer_expr(constructor.argument, env)
        subst = self._unify(argument_type, actual_type, subst, constructor.argument)
        return subst.apply(result_type), subst

    def _infer_operator(
        self,
        operator: str,
        operands: List[Expression],
        env: TypeEnvironment,
    ) -> InferenceResult:
        """Infer an infix operation as the application of the operator to its operands."""
        operator_type = self.operator_schemes[operator].instantiate(self.fresh_var_gen)
        subst = TypeSubstitution()
        for operand in operands:
            match operator_type:
                case FunctionType(param=param, result=result):
                    operand_type, operand_subst = self.infer_expr(
                        operand,
                        env.apply_substitution(subst),
                    )
                    subst = operand_subst.compose(subst)
                    subst = self._unify(param, operand_type, subst, operand)
                    operator_type = result
                case _:
                    raise TypeInferenceError(f"Operator {operator} takes too many operands")
        return subst.apply(operator_type), subst

    def _infer_cons(
        self,
        head: Expression,
        tail: Expression,
        env: TypeEnvironment,
    ) -> InferenceResult:
        head_type, subst = self.infer_expr(head, env)
        tail_type, tail_subst = self.infer_expr(tail, env.apply_substitution(subst))
        subst = tail_subst.compose(subst)
        result_type = list_type(head_type)
        subst = self._unify(result_type, tail_type, subst, tail)
        return subst.apply(result_type), subst

    def _infer_function_application(
        self,
        function: Expression,
        argument: Expression,
        env: TypeEnvironment,
    ) -> InferenceResult:
        """Infer type of function application."""
        function_type_, subst = self.infer_expr(function, env)
        function_type_ = subst.apply(function_type_)

        param_type: Type
        result_type: Type
        match function_type_:
            case FunctionType(param=param, result=result):
                param_type, result_type = param, result
            case TypeVar():
                param_type, result_type = self.fresh_type_var(), self.fresh_type_var()
                subst = self._unify(
                    FunctionType(param_type, result_type),
                    function_type_,
                    subst,
                    function,
                )
            case _:
                raise TypeInferenceError(
                    f"This expression has type {normalize_type(function_type_)}. "
                    "This is not a function; it cannot be applied.",
                    function,
                )

        argument_type, argument_subst = self.infer_expr(
            argument,
            env.apply_substitution(subst),
        )
        subst = argument_subst.compose(subst)
        subst = self._unify(param_type, argument_type, subst, argument)
        return subst.apply(result_type), subst

    def _infer_lambda(
        self,
        params: List[Pattern],
        body: Expression,
        env: TypeEnvironment,
    ) -> InferenceResult:
        subst = TypeSubstitution()
        param_types: List[Type] = []
        bindings: Dict[str, Type] = {}
        for param in params:
            param_type, param_bindings, subst = self.infer_pattern(param, subst)
            for name in param_bindings:
                if name in bindings:
                    raise PatternError(
                        f"Variable {name} is bound several times in this matching",
                        param,
                    )
            bindings.update(param_bindings)
            param_types.append(param_type)
            self._check_irrefutable(param)

        body_env = env.apply_substitution(subst).extend_many(
            self._monomorphic(bindings, subst),
        )
        body_type, body_subst = self.infer_expr(body, body_env)
        subst = body_subst.compose(subst)
        return subst.apply(function_type(param_types, body_type)), subst

    def _infer_cases(
        self,
        scrutinee_type: Type,
        cases: List[MatchCase],
        env: TypeEnvironment,
        subst: TypeSubstitution,
    ) -> InferenceResult:
        """Infer match arms against a scrutinee type; all arm bodies share one type."""
        result_type = self.fresh_type_var()
        for case in cases:
            pattern_type, bindings, subst = self.infer_pattern(case.pattern, subst)
            subst = self._unify(scrutinee_type, pattern_type, subst, case.pattern, "pattern")
            case_env = env.apply_substitution(subst).extend_many(
                self._monomorphic(bindings, subst),
            )
            if case.guard is not None:
                guard_type, guard_subst = self.infer_expr(case.guard, case_env)
                subst = guard_subst.compose(subst)
                subst = self._unify(BOOL_TYPE, guard_type, subst, case.guard)
                case_env = case_env.apply_substitution(subst)
            body_type, body_subst = self.infer_expr(case.body, case_env)
            subst = body_subst.compose(subst)
            subst = self._unify(result_type, body_type, subst, case.body)
            case.ty = subst.apply(body_type)
        self._check_cases(cases)
        return subst.apply(result_type), subst

    def _infer_if_else(
        self,
        cond: Expression,
        then_expr: Expression,
        else_expr: Optional[Expression],
        env: TypeEnvironment,
    ) -> InferenceResult:
        """Infer type of if-then-else; without else the branch must be unit."""
        cond_type, subst = self.infer_expr(cond, env)
        subst = self._unify(BOOL_TYPE, cond_type, subst, cond)

        then_type, then_subst = self.infer_expr(then_expr, env.apply_substitution(subst))
        subst = then_subst.compose(subst)
        if else_expr is None:
            return UNIT_TYPE, self._unify(UNIT_TYPE, then_type, subst, then_expr)

        else_type, else_subst = self.infer_expr(else_expr, env.apply_substitution(subst))
        subst = else_subst.compose(subst)
        subst = self._unify(then_type, else_type, subst, else_expr)
        return subst.apply(then_type), subst

    def _infer_sequence(
        self,
        first: Expression,
        second: Expression,
        env: TypeEnvironment,
    ) -> InferenceResult:
        first_type, subst = self.infer_expr(first, env)
        match subst.apply(first_type):
            case FunctionType():
                self._warn(PARTIAL_APPLICATION_WARNING)
            case TypeVar():
                pass
            case discarded if discarded != UNIT_TYPE:
                self._warn(NON_UNIT_STATEMENT_WARNING)
        second_type, second_subst = self.infer_expr(second, env.apply_substitution(subst))
        return second_type, second_subst.compose(subst)

    # Definitions

    def infer_let_definition(
        self,
        definition: LetDefinition,
        env: TypeEnvironment,
    ) -> Tuple[TypeBindings, TypeSubstitution]:
        """Infer a `let [rec] ... and ...` group and generalize the names it binds."""
        seen: Set[str] = set()
        for binding in definition.bindings:
            for name in pattern_variables(binding.pattern):
                if name in seen:
                    raise TypeInferenceError(
                        f"Variable {name} is bound several times in this matching",
                        binding.pattern,
                    )
                seen.add(name)

        if definition.recursive:
            types, subst = self._infer_let_rec(definition, env)
        else:
            types, subst = self._infer_let(definition, env)

        env_vars = env.apply_substitution(subst).free_type_vars()
        schemes: TypeBindings = {}
        for name, typ in types.items():
            schemes[name] = generalize(env_vars, subst.apply(typ))
            logger.debug("generalize %s : %s", name, schemes[name])
        return schemes, subst

    def _infer_let(
        self,
        definition: LetDefinition,
        env: TypeEnvironment,
    ) -> Tuple[Dict[str, Type], TypeSubstitution]:
        subst = TypeSubstitution()
        types: Dict[str, Type] = {}
        for binding in definition.bindings:
            value_type, value_subst = self.infer_expr(
                binding.body,
                env.apply_substitution(subst),
            )
            subst = value_subst.compose(subst)
            pattern_type, bindings, subst = self.infer_pattern(binding.pattern, subst)
            subst = self._unify(pattern_type, value_type, subst, binding.body)
            binding.ty = subst.apply(value_type)
            self._check_irrefutable(binding.pattern)
            types.update(bindings)
        return types, subst

    def _infer_let_rec(
        self,
        definition: LetDefinition,
        env: TypeEnvironment,
    ) -> Tuple[Dict[str, Type], TypeSubstitution]:
        types: Dict[str, Type] = {}
        for binding in definition.bindings:
            match binding.pattern:
                case VariablePattern(name=name):
                    types[name] = self.fresh_type_var()
                case _:
                    raise TypeInferenceError(
                        "Only variables are allowed as left-hand side of `let rec'",
                        binding.pattern,
                    )
            if not _is_function(binding.body):
                raise TypeInferenceError(
                    "This kind of expression is not allowed as right-hand side of `let rec'",
                    binding.body,
                )

        # Monomorphic inside the group, generalized afterwards
        rec_env = env.extend_many({name: TypeScheme(set(), typ) for name, typ in types.items()})
        subst = TypeSubstitution()
        for binding, rec_type in zip(definition.bindings, types.values()):
            value_type, value_subst = self.infer_expr(
                binding.body,
                rec_env.apply_substitution(subst),
            )
            subst = value_subst.compose(subst)
            subst = self._unify(rec_type, value_type, subst, binding.body)
            binding.ty = subst.apply(value_type)
        return types, subst

    def infer_phrase(
        self,
        phrase: Phrase,
        env: TypeEnvironment,
    ) -> Tuple[TypeEnvironment, NamedSchemes]:
        """Infer one toplevel phrase; returns the new environment and the names it defines."""
        self.annotation_vars = {}
        with raised_recursion_limit():
            try:
                return self._infer_phrase(phrase, env)
            except RecursionError as e:
                raise TypeInferenceError(
                    "This expression is too deeply nested to type check", phrase
                ) from e

    def _infer_phrase(
        self,
        phrase: Phrase,
        env: TypeEnvironment,
    ) -> Tuple[TypeEnvironment, NamedSchemes]:
        match phrase:
            case LetDefinition() as definition:
                schemes, _ = self.infer_let_definition(definition, env)
                return env.extend_many(schemes), list(schemes.items())
            case TypeDefinition() as definition:
                self.infer_type_definition(definition)
                return env, []
            case TopExpression(expression=expression):
                expr_type, subst = self.infer_expr(expression, env)
                phrase.ty = subst.apply(expr_type)
                scheme = generalize(env.apply_substitution(subst).free_type_vars(), phrase.ty)
                return env, [("-", scheme)]
            case _:
                raise TypeInferenceError(
                    f"Unhandled phrase type: {type(phrase).__name__}",
                    phrase,
                )

    def infer_program(
        self,
        program: Program,
        env: Optional[TypeEnvironment] = None,
    ) -> Tuple[TypeEnvironment, NamedSchemes]:
        """Infer every phrase in order, threading the environment."""
        if env is None:
            env = self.initial_environment()
        bindings: NamedSchemes = []
        for phrase in program.phrases:
            env, defined = self.infer_phrase(phrase, env)
            bindings.extend(defined)
        return env, bindings

    def prelude_environment(self) -> TypeEnvironment:
        """Initial environment extended with the prelude's types and values."""
        env, _ = self.infer_program(parse_prelude(), self.initial_environment())
        return env


def type_check_ast(
    ast: Program,
    use_prelude: bool = True,
) -> Tuple[TypeInferrer, TypeEnvironment, NamedSchemes]:
    """Type check a whole program; raises TypeInferenceError on the first error."""
    inferrer = TypeInferrer()
    env = inferrer.prelude_environment() if use_prelude else inferrer.initial_environment()
    env, bindings = inferrer.infer_program(ast, env)
    return inferrer, env, bindings
